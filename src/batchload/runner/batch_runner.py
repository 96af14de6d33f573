"""
Batch runner: streams a text file through a record processor and sends one
throttled request per line.

This module provides the run orchestrator that:
- Reads the input file lazily and pauses reading under backpressure
- Admits one job per line through the admission controller
- Folds every result into the run counters and the result sink
- Aborts on systemic errors and drains in-flight jobs before finishing
- Persists the run record at start and the final stats exactly once
"""

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..auth.credentials import CredentialProvider
from ..config.options import RunnerConfig, RunOptions
from ..core.errors import (
    AdmissionRefusedError, FatalSystemError, LineSourceError, RunAbortedError,
    ValidationError,
)
from ..core.models import Job, Record, Result, RunState, RunStats, StatusKind
from ..core.processor import RecordProcessor, ResultObserver, validate_processor
from ..core.run_store import RunStore
from ..core.transport import Transport
from ..limiter.admission_controller import (
    DONE, ERROR, IDLE, AdmissionController, LimiterSettings,
)
from ..source.line_source import LineSource
from ..storage.redaction import ResultRedactor
from .job_executor import JobExecutor
from .request_resolver import RequestResolver
from .result_sink import ProgressReporter, ResultSink
from .run_tracker import RunTracker


logger = logging.getLogger(__name__)


async def _call_hook(hook: Any) -> None:
    outcome = hook()
    if inspect.isawaitable(outcome):
        await outcome


class BatchRunner:
    """
    Orchestrates one batch run over one file.

    A runner instance is single use. All counters and state are mutated on
    the event loop. File reads and HTTP calls run on a thread pool owned by
    the run. Result writes run on a second, smaller pool of their own.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        options: RunOptions,
        processor: RecordProcessor,
        transport: Transport,
        store: RunStore,
        observer: Optional[ResultObserver] = None,
        config: Optional[RunnerConfig] = None,
        environ: Optional[Dict[str, str]] = None,
        redactor: Optional[ResultRedactor] = None,
    ):
        """
        Initialize the batch runner.

        Args:
            file_path: Text file to process, one record per line
            options: Run-level request options and credentials
            processor: Record processor turning lines into payloads
            transport: Transport for outbound calls
            store: Run store for the run record and results
            observer: Optional observer called with every result
            config: Runner tunables (uses defaults if not provided)
            environ: Environment mapping (defaults to os.environ)
            redactor: Result redactor (built from config if not provided)

        Raises:
            ValidationError: If the file path or processor is missing or invalid
        """
        if not file_path:
            raise ValidationError("A file path is required")
        validate_processor(processor)
        if transport is None:
            raise ValidationError("A transport is required")
        if store is None:
            raise ValidationError("A run store is required")

        self.file_path = Path(file_path)
        self.options = options or RunOptions()
        self.processor = processor
        self.transport = transport
        self.store = store
        self.observer = observer
        self.config = config or RunnerConfig()
        self.config.validate()
        self.environ = environ
        self.redactor = redactor or ResultRedactor(self.config.result_log_items)

        self.tracker: Optional[RunTracker] = None
        self.controller: Optional[AdmissionController] = None
        self.sink: Optional[ResultSink] = None
        self.job_executor: Optional[JobExecutor] = None
        self._source: Optional[LineSource] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._store_executor: Optional[ThreadPoolExecutor] = None
        self._progress: Optional[ProgressReporter] = None
        self._drained: Optional[asyncio.Event] = None
        self._input_done = False
        self._aborting = False
        self._abort_cause: Optional[BaseException] = None
        self._started_at = 0.0
        self._started = False

    # =========================================================================
    # Public API
    # =========================================================================

    async def run(self) -> RunStats:
        """
        Execute the run.

        Returns:
            Final RunStats of a completed run

        Raises:
            ValidationError: If the input file does not exist (no run is created)
            RunAbortedError: If the run ended aborted; chains the cause
        """
        if self._started:
            raise ValidationError("A BatchRunner can only be run once")
        self._started = True

        if not self.file_path.is_file():
            raise ValidationError(f"Input file not found: {self.file_path}")

        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        self._drained = asyncio.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.io_workers or self.config.max_concurrent + 4,
            thread_name_prefix="batchload-io",
        )
        self._store_executor = ThreadPoolExecutor(
            max_workers=self.config.store_workers,
            thread_name_prefix="batchload-store",
        )
        self.tracker = RunTracker(self.store, self._executor)
        self.controller = AdmissionController(LimiterSettings(
            max_concurrent=self.config.max_concurrent,
            min_time_ms=self.config.min_time_ms,
        ))
        self.controller.on(DONE, self._on_job_done)
        self.controller.on(IDLE, self._on_idle)
        self.controller.on(ERROR, self._on_limiter_error)
        self.sink = ResultSink(
            store=self.store,
            observer=self.observer,
            redactor=self.redactor,
            run_id=lambda: self.tracker.stats.run_id,
            executor=self._store_executor,
            workers=self.config.store_workers,
            max_pending=self.config.max_queue_size,
        )
        self._progress = ProgressReporter(self.progress_snapshot, self.config.progress_interval_ms)

        logger.info(f"Starting batch run for {self.file_path}")
        logger.info(f"Configuration: max_concurrent={self.config.max_concurrent}, "
                    f"min_time_ms={self.config.min_time_ms}, "
                    f"max_queue_size={self.config.max_queue_size}")

        try:
            stats = await self._execute()
        finally:
            await self._progress.stop()
            self.sink.cancel()
            if self._source is not None:
                self._source.close()
            self._executor.shutdown(wait=False)
            self._store_executor.shutdown(wait=False)

        if self.tracker.state == RunState.ABORTED:
            logger.error(f"Run {stats.run_id or '-'} aborted: {stats.terminal_error}")
            raise RunAbortedError(stats.terminal_error, stats) from self._abort_cause

        logger.info(f"Run complete: {stats.run_id}")
        logger.info(f"Stats: total={stats.total_record_count}, "
                    f"succeeded={stats.success_count}, "
                    f"failed={stats.failure_count}, "
                    f"expired={stats.expired_count}")
        return stats

    def progress_snapshot(self) -> Dict[str, Any]:
        """Current counters for progress logging."""
        snap = self.tracker.snapshot()
        snap.update(self.controller.counts())
        snap["elapsed_s"] = round(asyncio.get_running_loop().time() - self._started_at, 1)
        return snap

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def _execute(self) -> RunStats:
        self.tracker.transition(RunState.INITIALIZING)
        loop = asyncio.get_running_loop()

        try:
            await _call_hook(self.processor.on_run_start)
            provider = CredentialProvider(self.transport, self.environ)
            access_token = await loop.run_in_executor(
                self._executor, provider.acquire, self.options
            )
            self.store.set_access_token(access_token)
            await self.tracker.create_run(self._run_metadata())
        except Exception as e:
            logger.critical(f"Run initialization failed: {e}")
            self._abort(e)
            return await self.tracker.finalize()

        self.job_executor = JobExecutor(
            processor=self.processor,
            resolver=RequestResolver(self.options, access_token, self.environ),
            transport=self.transport,
            config=self.config,
            executor=self._executor,
            on_fatal=self._on_fatal,
        )

        self.tracker.transition(RunState.STREAMING)
        self._progress.start()
        await self._stream()

        self.tracker.transition(RunState.DRAINING)
        await self._drained.wait()
        logger.info("All jobs finished")

        if self.tracker.terminal_error is None:
            try:
                await _call_hook(self.processor.on_run_end)
            except Exception as e:
                logger.exception(f"Record processor on_run_end failed: {e}")
                self._abort(e)

        await self.sink.flush()
        return await self.tracker.finalize()

    def _run_metadata(self) -> Dict[str, Any]:
        metadata = self.options.to_metadata()
        metadata.update({
            "file_path": str(self.file_path),
            "processor": type(self.processor).__name__,
            "max_concurrent": self.config.max_concurrent,
            "min_time_ms": self.config.min_time_ms,
            "max_queue_size": self.config.max_queue_size,
        })
        return metadata

    # =========================================================================
    # Streaming
    # =========================================================================

    async def _stream(self) -> None:
        """Pump lines into the admission controller until EOF or abort."""
        loop = asyncio.get_running_loop()
        source_id = str(self.file_path)
        expiration_ms = self.config.job_expiration_ms or None

        try:
            self._source = LineSource(self.file_path, self._executor).open()
            async for line_number, text in self._source:
                if self._aborting:
                    break
                job = Job(
                    record=Record(source_id, line_number, text),
                    submitted_at=loop.time(),
                    expiration_ms=expiration_ms,
                )
                try:
                    future = self.controller.submit(job, self._run_job, job)
                except AdmissionRefusedError:
                    break
                future.add_done_callback(self._on_job_future_done)

                if self.controller.counts()["RECEIVED"] >= self.config.max_queue_size:
                    self._source.pause()
        except LineSourceError as e:
            logger.critical(str(e))
            self._abort(e)
        except OSError as e:
            logger.critical(f"Could not read {self.file_path}: {e}")
            self._abort(FatalSystemError(f"Could not read {self.file_path}: {e}"))

        if self._source is not None and self._source.eof:
            logger.info(f"Reached end of input after {self._source.lines_delivered} lines")

        # The last job may have finished before input ended
        self._input_done = True
        if self.controller.is_idle():
            self._drained.set()

    async def _run_job(self, job: Job) -> Result:
        """Runs inside an admission slot; counters are folded before the slot frees."""
        result = await self.job_executor.execute(job)
        if result.status_kind == StatusKind.SKIPPED:
            return result
        self.tracker.record_result(result)
        await self.sink.dispatch(result)
        return result

    # =========================================================================
    # Controller events
    # =========================================================================

    def _on_job_done(self, job: Job) -> None:
        if job.expired:
            self.tracker.record_expired()
        source = self._source
        if (
            source is not None
            and source.paused
            and not self._aborting
            and self.controller.counts()["RECEIVED"] < self.config.max_queue_size
        ):
            source.resume()

    def _on_idle(self) -> None:
        if self._input_done:
            self._drained.set()
        elif self._source is not None and self._source.paused and not self._aborting:
            self._source.resume()

    def _on_limiter_error(self, error: BaseException) -> None:
        self._abort(FatalSystemError(f"Admission controller fault: {error}"))

    def _on_fatal(self, result: Result, error: BaseException) -> None:
        self._abort(error)

    def _on_job_future_done(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Job failed outside the executor: {error}")
            self._abort(FatalSystemError(f"Job failed outside the executor: {error}"))

    # =========================================================================
    # Abort
    # =========================================================================

    def _abort(self, error: BaseException) -> None:
        """Stop admission and reading; in-flight jobs are left to finish."""
        if self._abort_cause is None:
            self._abort_cause = error
        self.tracker.record_terminal_error(error)
        if self._aborting:
            return
        self._aborting = True

        logger.error(f"Aborting run {self.tracker.stats.run_id or '-'}: {error}")
        if self._source is not None:
            self._source.stop()
        if self.controller is not None:
            self.controller.update_settings(reservoir=0)
            self.controller.cancel_queued()


async def process_file(
    file_path: Union[str, Path],
    options: RunOptions,
    processor: RecordProcessor,
    transport: Transport,
    store: RunStore,
    observer: Optional[ResultObserver] = None,
    config: Optional[RunnerConfig] = None,
    environ: Optional[Dict[str, str]] = None,
) -> RunStats:
    """
    Process a file with a one-off BatchRunner.

    Returns:
        Final RunStats

    Raises:
        ValidationError: For invalid input before the run starts
        RunAbortedError: If the run was aborted
    """
    runner = BatchRunner(
        file_path=file_path,
        options=options,
        processor=processor,
        transport=transport,
        store=store,
        observer=observer,
        config=config,
        environ=environ,
    )
    return await runner.run()
