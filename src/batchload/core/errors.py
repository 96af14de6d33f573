"""
Error taxonomy for batch loading runs.

Per-record errors (TransformError, TransportError) are isolated and counted;
systemic errors (ConfigurationError, FatalSystemError) abort the run.
"""

from typing import Any, Optional


class BatchLoadError(Exception):
    """Base class for all batchload errors."""


class ValidationError(BatchLoadError):
    """Invalid input detected before a run is created."""


class ConfigurationError(BatchLoadError):
    """
    A required setting could not be resolved from any precedence level.

    Attributes:
        key: Name of the missing configuration key
    """

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(
            message or f"'{key}' is not set in the record payload, run options or environment"
        )


class TransformError(BatchLoadError):
    """A record could not be turned into a request payload."""


class TransportError(BatchLoadError):
    """The outbound call for a single record failed."""


class FatalSystemError(BatchLoadError):
    """A systemic failure that must abort the run."""


class LineSourceError(FatalSystemError):
    """
    Reading the input file failed after it was opened.

    Attributes:
        last_line_number: Last line successfully delivered before the fault
    """

    def __init__(self, message: str, last_line_number: int = 0):
        self.last_line_number = last_line_number
        super().__init__(f"{message} (after line {last_line_number})")


class AuthenticationError(FatalSystemError):
    """Credentials could not be obtained or were rejected."""


class StaleVersionError(FatalSystemError):
    """A run update carried a version token that is no longer current."""


class AdmissionRefusedError(BatchLoadError):
    """The admission controller no longer accepts submissions."""


class InvalidTransitionError(BatchLoadError):
    """A run lifecycle transition that the state machine does not allow."""


class RunAbortedError(BatchLoadError):
    """
    Raised to the caller when a run ends in the aborted state.

    Attributes:
        reason: Human readable terminal error
        stats: Final RunStats of the aborted run (may be partial)
    """

    def __init__(self, reason: str, stats: Any = None):
        self.reason = reason
        self.stats = stats
        super().__init__(reason)
