"""
Transport interface for performing outbound calls.
"""

from abc import ABC, abstractmethod

from .models import RequestSpec, TransportResponse


class Transport(ABC):
    """
    Abstract base class for transports.

    Transports perform one outbound call per record and report the outcome
    as a TransportResponse. They run on worker threads, so ``send`` is a plain
    blocking method.
    """

    @abstractmethod
    def send(self, request: RequestSpec) -> TransportResponse:
        """
        Perform the call.

        Args:
            request: The resolved request

        Returns:
            TransportResponse; network failures are reported through
            ``error`` rather than raised

        Raises:
            TransportError: Optionally, for a failure tied to this record
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the transport name/identifier."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
