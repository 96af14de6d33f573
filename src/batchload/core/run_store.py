"""
Run store interface for persisting run metadata, stats and results.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple


class RunStore(ABC):
    """
    Abstract base class for run stores.

    Run records use optimistic concurrency: every successful write returns a
    new version token and an update carrying a stale token is rejected.
    Methods are blocking and are called from worker threads.
    """

    @abstractmethod
    def create_run(self, metadata: Dict[str, Any]) -> Tuple[str, str]:
        """
        Create a run record.

        Args:
            metadata: Run parameters (file path, options, start time)

        Returns:
            Tuple of (run_id, version_token)

        Raises:
            FatalSystemError: If the record could not be created
        """
        pass

    @abstractmethod
    def update_run(self, run_id: str, version_token: str, stats: Dict[str, Any]) -> str:
        """
        Update a run record with stats.

        Args:
            run_id: ID of the run
            version_token: Token returned by the previous write
            stats: Stats to store

        Returns:
            The new version token

        Raises:
            StaleVersionError: If version_token is not current
            FatalSystemError: If the update failed otherwise
        """
        pass

    @abstractmethod
    def write_result(self, result: Dict[str, Any]) -> None:
        """
        Store a single (already redacted) result.

        Args:
            result: Result dictionary including ``run_id``
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the store name/identifier."""
        pass

    def set_access_token(self, token: Optional[str]) -> None:
        """Receive the token acquired for the run. Optional."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
