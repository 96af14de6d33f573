"""
Record processor and result observer interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

from .errors import ValidationError
from .models import Record, Result


class RecordProcessor(ABC):
    """
    Abstract base class for record processors.

    A processor turns one line of the input file into a request payload.
    Returning ``(None, None)`` tells the engine to ignore the record.
    Any of the methods may be coroutines.
    """

    @abstractmethod
    def transform(self, record: Record) -> Tuple[Optional[Any], Optional[Any]]:
        """
        Convert a record into a payload.

        Args:
            record: The record to convert

        Returns:
            Tuple of (payload, error). The payload is a Payload or a mapping
            with the same keys; error is any description of a data problem.
        """
        pass

    def on_run_start(self) -> None:
        """Called once before the first line is read. Optional."""
        pass

    def on_run_end(self) -> None:
        """Called once after the last job completed. Optional."""
        pass


class ResultObserver(ABC):
    """Receives every counted result of a run."""

    @abstractmethod
    def on_each_result(self, result: Result) -> None:
        """
        Observe a result. Exceptions are logged by the caller and ignored.

        Args:
            result: The completed result
        """
        pass


def validate_processor(processor: Any) -> None:
    """
    Check that an object can act as a record processor.

    Raises:
        ValidationError: If the object has no callable ``transform``
    """
    if processor is None:
        raise ValidationError("A record processor is required")
    if not callable(getattr(processor, "transform", None)):
        raise ValidationError(
            f"Record processor {type(processor).__name__} does not define transform()"
        )
