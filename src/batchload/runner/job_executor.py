"""
Job executor: turns one record into exactly one classified Result.
"""

import asyncio
import inspect
import logging
import traceback
from concurrent.futures import Executor
from typing import Any, Callable, Dict, Optional, Tuple

from ..config.options import RunnerConfig
from ..core.errors import ConfigurationError, TransformError, TransportError
from ..core.models import (
    Job, Payload, Record, RequestSpec, Result, StatusKind, TransportResponse,
)
from ..core.processor import RecordProcessor
from ..core.transport import Transport
from .request_resolver import RequestResolver


logger = logging.getLogger(__name__)


FatalCallback = Callable[[Result, BaseException], None]


def describe_error(error: Any) -> Any:
    """Normalize an error value into a JSON-friendly object."""
    if isinstance(error, BaseException):
        return {
            "error_message": str(error),
            "error_type": type(error).__name__,
            "stack": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
        }
    if isinstance(error, str):
        return {"error_message": error}
    return error


def _snapshot(payload: Any) -> Optional[Dict[str, Any]]:
    if payload is None:
        return None
    if isinstance(payload, Payload):
        return payload.to_dict()
    if isinstance(payload, dict):
        return dict(payload)
    return {"body": repr(payload)}


class JobExecutor:
    """
    Executes jobs for one run.

    Decision sequence per record:
    1. transform the record with the processor
    2. a transform error -> FAILED
    3. no payload and no error -> SKIPPED
    4. resolve the request; a missing endpoint/method -> FATAL
    5. send the request; success status -> SUCCESS, otherwise FAILED
    6. anything unexpected -> FATAL
    """

    def __init__(
        self,
        processor: RecordProcessor,
        resolver: RequestResolver,
        transport: Transport,
        config: RunnerConfig,
        executor: Optional[Executor] = None,
        on_fatal: Optional[FatalCallback] = None,
    ):
        """
        Initialize the job executor.

        Args:
            processor: Record processor for the run
            resolver: Request resolver holding run options and token
            transport: Transport used for the outbound calls
            config: Runner tunables (success status codes)
            executor: Executor for blocking transport calls
            on_fatal: Called immediately when a job is classified FATAL
        """
        self.processor = processor
        self.resolver = resolver
        self.transport = transport
        self.config = config
        self.executor = executor
        self.on_fatal = on_fatal

    async def execute(self, job: Job) -> Result:
        """
        Execute a job. Never raises; every outcome is a Result.
        """
        record = job.record
        payload = None
        logger.debug(f"Executing job for line {record.line_number}")

        try:
            try:
                raw_payload, transform_error = await self._transform(record)
            except TransformError as e:
                raw_payload, transform_error = None, e

            if transform_error is not None:
                logger.debug(
                    f"Transform failed for line {record.line_number}: {transform_error}"
                )
                return Result(
                    record=record,
                    status_kind=StatusKind.FAILED,
                    payload_snapshot=_snapshot(raw_payload),
                    error_detail=describe_error(transform_error),
                )

            if raw_payload is None:
                logger.debug(f"No payload for line {record.line_number}; record ignored")
                return Result(record=record, status_kind=StatusKind.SKIPPED)

            payload = Payload.coerce(raw_payload)
            request = self.resolver.resolve(payload)

            loop = asyncio.get_running_loop()
            logger.debug(f"{request.method} {request.endpoint} for line {record.line_number}")
            try:
                response = await loop.run_in_executor(
                    self.executor, self.transport.send, request
                )
            except TransportError as e:
                return Result(
                    record=record,
                    status_kind=StatusKind.FAILED,
                    payload_snapshot=_snapshot(payload),
                    request_snapshot=request.to_dict(),
                    error_detail=describe_error(e),
                )

            return self._classify(record, payload, request, response)

        except ConfigurationError as e:
            logger.critical(f"Configuration error at line {record.line_number}: {e}")
            return self._fatal(record, payload, e)
        except Exception as e:
            logger.exception(f"Unexpected error executing line {record.line_number}: {e}")
            return self._fatal(record, payload, e)

    async def _transform(self, record: Record) -> Tuple[Any, Any]:
        outcome = self.processor.transform(record)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if not isinstance(outcome, tuple) or len(outcome) != 2:
            raise TypeError(
                f"{type(self.processor).__name__}.transform() must return (payload, error), "
                f"got {outcome!r}"
            )
        return outcome

    def _classify(
        self,
        record: Record,
        payload: Payload,
        request: RequestSpec,
        response: TransportResponse,
    ) -> Result:
        response_snapshot = {
            "status_code": response.status_code,
            "body": response.body,
            "headers": response.headers,
        }

        if response.error is None and self.config.is_success(response.status_code):
            status, error_detail = StatusKind.SUCCESS, None
        elif response.error is not None:
            status, error_detail = StatusKind.FAILED, describe_error(response.error)
        else:
            status, error_detail = StatusKind.FAILED, response.body

        return Result(
            record=record,
            status_kind=status,
            payload_snapshot=_snapshot(payload),
            request_snapshot=request.to_dict(),
            response_snapshot=response_snapshot,
            status_code=response.status_code,
            error_detail=error_detail,
        )

    def _fatal(self, record: Record, payload: Any, error: BaseException) -> Result:
        result = Result(
            record=record,
            status_kind=StatusKind.FATAL,
            payload_snapshot=_snapshot(payload),
            error_detail=describe_error(error),
        )
        if self.on_fatal is not None:
            try:
                self.on_fatal(result, error)
            except Exception as e:
                logger.exception(f"Fatal handler failed: {e}")
        return result
