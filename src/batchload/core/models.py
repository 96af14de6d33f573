"""
Core data models for batch loading runs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class StatusKind(str, Enum):
    """Outcome classification of a single job."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    FATAL = "FATAL"


class RunState(str, Enum):
    """Lifecycle state of a run."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    STREAMING = "streaming"
    DRAINING = "draining"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.ABORTED)


@dataclass(frozen=True)
class Record:
    """
    One line of the input file.

    Attributes:
        source_id: Identity of the source (the file path)
        line_number: 1-based position of the line in the file
        raw_text: Line content without its terminator
    """
    source_id: str
    line_number: int
    raw_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "line_number": self.line_number,
            "raw_text": self.raw_text,
        }


@dataclass
class Job:
    """
    A record in flight through the admission controller.

    Attributes:
        record: The record being processed
        submitted_at: Event loop time at submission
        expiration_ms: Advisory budget from submission to completion
        sequence_id: Admission bookkeeping id (equals the line number)
        expired: Set on completion when the budget was exceeded
    """
    record: Record
    submitted_at: float
    expiration_ms: Optional[int] = None
    sequence_id: int = 0
    expired: bool = False

    def __post_init__(self):
        if not self.sequence_id:
            self.sequence_id = self.record.line_number


@dataclass
class Payload:
    """
    Request payload produced by a RecordProcessor.

    Every field except ``body`` is an optional per-record override that takes
    precedence over run options and environment.
    """
    body: Any = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    base_url: Optional[str] = None
    access_token: Optional[str] = None

    @classmethod
    def coerce(cls, value: Any) -> "Payload":
        """Accept a Payload or a mapping with the same keys."""
        if isinstance(value, Payload):
            return value
        if isinstance(value, Mapping):
            return cls(
                body=value.get("body", value.get("json")),
                endpoint=value.get("endpoint"),
                method=value.get("method"),
                headers=value.get("headers"),
                base_url=value.get("base_url"),
                access_token=value.get("access_token"),
            )
        raise TypeError(f"Unsupported payload type: {type(value).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        data = {"body": self.body}
        for key in ("endpoint", "method", "headers", "base_url"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass
class RequestSpec:
    """
    Fully resolved outbound request for one record.

    Attributes:
        endpoint: Absolute URL
        method: HTTP method (upper case)
        headers: Request headers
        body: Request body (JSON-serializable)
        params: Query parameters
    """
    endpoint: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    params: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "method": self.method,
            "headers": dict(self.headers),
            "body": self.body,
            "params": dict(self.params) if self.params else None,
        }


@dataclass
class TransportResponse:
    """
    Response from a transport.

    Attributes:
        status_code: Response status, None when the call never completed
        body: Response body (parsed JSON where possible)
        headers: Response headers
        error: Transport error message if the call failed
        duration_ms: Time taken for the call in milliseconds
    """
    status_code: Optional[int] = None
    body: Any = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class Result:
    """
    Outcome of one job. Created once, consumed by the result sink.
    """
    record: Record
    status_kind: StatusKind
    payload_snapshot: Optional[Dict[str, Any]] = None
    request_snapshot: Optional[Dict[str, Any]] = None
    response_snapshot: Optional[Dict[str, Any]] = None
    status_code: Optional[int] = None
    error_detail: Any = None

    @property
    def counts_toward_totals(self) -> bool:
        return self.status_kind in (StatusKind.SUCCESS, StatusKind.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "status": self.status_kind.value,
            "status_code": self.status_code,
            "payload": self.payload_snapshot,
            "request": self.request_snapshot,
            "response": self.response_snapshot,
            "error": self.error_detail,
        }


@dataclass
class RunStats:
    """Aggregate statistics for a run."""
    run_id: Optional[str] = None
    version_token: Optional[str] = None
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None
    total_record_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    expired_count: int = 0
    terminal_error: Optional[str] = None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "total_record_count": self.total_record_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "expired_count": self.expired_count,
            "error": {"error_message": self.terminal_error} if self.terminal_error else None,
        }
