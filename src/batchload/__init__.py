"""
batchload: throttled bulk loading of line-oriented files into an HTTP API.

Each line of the input file becomes one record; a record processor turns it
into a request payload, and the engine sends the requests with bounded
concurrency and rate while tracking the run.
"""

from .config import BatchConfig, Credentials, RunnerConfig, RunOptions
from .core import (
    BatchLoadError,
    ConfigurationError,
    Payload,
    Record,
    RecordProcessor,
    Result,
    ResultObserver,
    RunAbortedError,
    RunStats,
    StatusKind,
    ValidationError,
)
from .runner import BatchRunner, process_file

__version__ = "0.1.0"

__all__ = [
    "BatchConfig",
    "Credentials",
    "RunnerConfig",
    "RunOptions",
    "BatchLoadError",
    "ConfigurationError",
    "Payload",
    "Record",
    "RecordProcessor",
    "Result",
    "ResultObserver",
    "RunAbortedError",
    "RunStats",
    "StatusKind",
    "ValidationError",
    "BatchRunner",
    "process_file",
]
