"""
Typed run options and runner tunables.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from ..core.errors import ValidationError


# Items that may be kept verbatim in persisted results
RESULT_LOG_ITEMS = frozenset({"error.details", "error.stack", "response.headers"})


@dataclass
class RunnerConfig:
    """
    Tunables for a batch run.

    Attributes:
        max_concurrent: Maximum number of jobs executing at once
        min_time_ms: Minimum milliseconds between two job start times
        max_queue_size: Received-job count at which file reading pauses
        job_expiration_ms: Advisory per-job budget (0 disables)
        progress_interval_ms: Interval between progress log lines (0 disables)
        result_log_items: Items kept verbatim in persisted results
        success_status_codes: Status codes counted as success (None = any 2xx)
        io_workers: Threads for file reads and HTTP calls (None = max_concurrent + 4)
        store_workers: Threads writing results to the run store
    """
    max_concurrent: int = 80
    min_time_ms: int = 20
    max_queue_size: int = 50000
    job_expiration_ms: int = 25000
    progress_interval_ms: int = 10000
    result_log_items: FrozenSet[str] = frozenset()
    success_status_codes: Optional[FrozenSet[int]] = None
    io_workers: Optional[int] = None
    store_workers: int = 4

    def validate(self) -> None:
        """Raise ValidationError for values the engine cannot run with."""
        if self.max_concurrent < 1:
            raise ValidationError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.min_time_ms < 0:
            raise ValidationError(f"min_time_ms must be >= 0, got {self.min_time_ms}")
        if self.max_queue_size < 1:
            raise ValidationError(f"max_queue_size must be >= 1, got {self.max_queue_size}")
        if self.job_expiration_ms < 0:
            raise ValidationError(f"job_expiration_ms must be >= 0, got {self.job_expiration_ms}")
        if self.store_workers < 1:
            raise ValidationError(f"store_workers must be >= 1, got {self.store_workers}")
        if self.progress_interval_ms < 0:
            raise ValidationError(
                f"progress_interval_ms must be >= 0, got {self.progress_interval_ms}"
            )
        unknown = set(self.result_log_items) - RESULT_LOG_ITEMS
        if unknown:
            raise ValidationError(
                f"Unknown result_log_items: {sorted(unknown)}. "
                f"Allowed: {sorted(RESULT_LOG_ITEMS)}"
            )

    def is_success(self, status_code: Optional[int]) -> bool:
        if status_code is None:
            return False
        if self.success_status_codes is not None:
            return status_code in self.success_status_codes
        return 200 <= status_code < 300


@dataclass
class Credentials:
    """
    Credentials supplied with a run.

    Attributes:
        username: Login user name
        password: Login password
        tenant_id: Tenant sent as the ``tenant-id`` header on login
        access_token: Explicit token, used when no login is configured
    """
    username: Optional[str] = None
    password: Optional[str] = None
    tenant_id: Optional[str] = None
    access_token: Optional[str] = None


@dataclass
class RunOptions:
    """
    Run-level request settings. Per-record payload values override these;
    these override the process environment.
    """
    base_url: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    credentials: Credentials = field(default_factory=Credentials)
    login_path: str = "/api/users/login"
    token_param: str = "access_token"

    def to_metadata(self) -> Dict[str, Any]:
        """Options as stored on the run record, without secrets."""
        return {
            "base_url": self.base_url,
            "endpoint": self.endpoint,
            "method": self.method,
            "headers": dict(self.headers) if self.headers else None,
            "username": self.credentials.username,
            "tenant_id": self.credentials.tenant_id,
        }
