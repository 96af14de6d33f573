"""
Core abstractions and interfaces for the batchload engine.
"""

from .models import (
    Record, Job, Payload, RequestSpec, TransportResponse,
    Result, RunStats, RunState, StatusKind,
)
from .processor import RecordProcessor, ResultObserver
from .transport import Transport
from .run_store import RunStore
from .errors import (
    BatchLoadError,
    ValidationError,
    ConfigurationError,
    TransformError,
    TransportError,
    FatalSystemError,
    LineSourceError,
    AuthenticationError,
    StaleVersionError,
    AdmissionRefusedError,
    InvalidTransitionError,
    RunAbortedError,
)

__all__ = [
    "Record",
    "Job",
    "Payload",
    "RequestSpec",
    "TransportResponse",
    "Result",
    "RunStats",
    "RunState",
    "StatusKind",
    "RecordProcessor",
    "ResultObserver",
    "Transport",
    "RunStore",
    "BatchLoadError",
    "ValidationError",
    "ConfigurationError",
    "TransformError",
    "TransportError",
    "FatalSystemError",
    "LineSourceError",
    "AuthenticationError",
    "StaleVersionError",
    "AdmissionRefusedError",
    "InvalidTransitionError",
    "RunAbortedError",
]
