"""
Admission controller for throttled job execution.

Jobs are started in submission order while respecting:
- max_concurrent: maximum number of jobs executing at once
- min_time_ms: minimum gap between two job start times (global)
- reservoir: optional ceiling on accepted submissions

The controller lives on a single event loop; counters are only touched
from loop callbacks, so no locking is needed.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from ..core.errors import AdmissionRefusedError, ValidationError
from ..core.models import Job


logger = logging.getLogger(__name__)


IDLE = "idle"
DONE = "done"
ERROR = "error"
_EVENTS = (IDLE, DONE, ERROR)


@dataclass
class LimiterSettings:
    """
    Settings for the admission controller.

    Attributes:
        max_concurrent: Maximum simultaneously executing jobs
        min_time_ms: Minimum milliseconds between two job starts
        reservoir: Remaining submissions accepted (None = unlimited)
    """
    max_concurrent: int = 80
    min_time_ms: int = 20
    reservoir: Optional[int] = None

    def validate(self) -> None:
        if self.max_concurrent < 1:
            raise ValidationError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.min_time_ms < 0:
            raise ValidationError(f"min_time_ms must be >= 0, got {self.min_time_ms}")
        if self.reservoir is not None and self.reservoir < 0:
            raise ValidationError(f"reservoir must be >= 0, got {self.reservoir}")


@dataclass
class _Pending:
    job: Job
    execute_fn: Callable[..., Awaitable[Any]]
    args: tuple
    future: asyncio.Future


class AdmissionController:
    """
    Bounded-concurrency, bounded-rate job scheduler.

    ``submit`` registers a job synchronously and returns a future that
    resolves with the job function's result. ``done`` listeners are called
    with the job after every finished job; ``idle`` listeners are called
    every time the number of received (unfinished) jobs drops to zero;
    ``error`` listeners are called with the exception when scheduling
    itself fails.
    """

    def __init__(self, settings: Optional[LimiterSettings] = None):
        """
        Initialize the admission controller.

        Args:
            settings: Limiter settings (uses defaults if not provided)
        """
        self.settings = settings or LimiterSettings()
        self.settings.validate()

        self._queue: Deque[_Pending] = deque()
        self._received = 0
        self._running = 0
        self._done = 0
        self._next_start_at = 0.0
        self._wakeup: Optional[asyncio.TimerHandle] = None
        self._tasks: set = set()
        self._listeners: Dict[str, List[Callable[..., None]]] = {e: [] for e in _EVENTS}

    # =========================================================================
    # Public API
    # =========================================================================

    def on(self, event: str, listener: Callable[..., None]) -> None:
        """
        Register an event listener.

        Args:
            event: 'idle', 'done' or 'error'
            listener: Callable; 'error' listeners receive the exception
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown limiter event: {event}")
        self._listeners[event].append(listener)

    def counts(self) -> Dict[str, int]:
        """Return current job counters."""
        return {
            "RECEIVED": self._received,
            "QUEUED": len(self._queue),
            "RUNNING": self._running,
            "DONE": self._done,
        }

    def is_idle(self) -> bool:
        return self._received == 0

    def update_settings(
        self,
        max_concurrent: Optional[int] = None,
        min_time_ms: Optional[int] = None,
        reservoir: Optional[int] = None,
    ) -> None:
        """
        Adjust settings at runtime. ``reservoir=0`` refuses all further
        submissions; jobs already accepted still run.
        """
        if max_concurrent is not None:
            self.settings.max_concurrent = max_concurrent
        if min_time_ms is not None:
            self.settings.min_time_ms = min_time_ms
        if reservoir is not None:
            self.settings.reservoir = reservoir
        self.settings.validate()
        logger.debug(f"Limiter settings updated: {self.settings}")
        self._schedule()

    def submit(
        self,
        job: Job,
        execute_fn: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> asyncio.Future:
        """
        Accept a job for execution.

        Args:
            job: The job being admitted
            execute_fn: Coroutine function run when a slot is free
            *args: Arguments for execute_fn

        Returns:
            Future resolved with execute_fn's result or exception

        Raises:
            AdmissionRefusedError: If the reservoir is exhausted
        """
        reservoir = self.settings.reservoir
        if reservoir is not None:
            if reservoir <= 0:
                raise AdmissionRefusedError(
                    f"Job {job.sequence_id} refused: limiter reservoir is exhausted"
                )
            self.settings.reservoir = reservoir - 1

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append(_Pending(job, execute_fn, args, future))
        self._received += 1
        self._schedule()
        return future

    def cancel_queued(self) -> int:
        """
        Drop every job that has not started yet. Their futures are cancelled;
        running jobs are left to finish.

        Returns:
            Number of jobs dropped
        """
        dropped = 0
        while self._queue:
            pending = self._queue.popleft()
            pending.future.cancel()
            self._received -= 1
            dropped += 1
        if self._wakeup is not None:
            self._wakeup.cancel()
            self._wakeup = None
        if dropped:
            logger.info(f"Dropped {dropped} queued jobs")
            if self._received == 0:
                self._emit(IDLE)
        return dropped

    # =========================================================================
    # Scheduling
    # =========================================================================

    def _schedule(self) -> None:
        """Start as many queued jobs as the limits currently allow."""
        try:
            self._start_eligible()
        except Exception as e:
            logger.exception(f"Limiter scheduling fault: {e}")
            self._emit(ERROR, e)

    def _start_eligible(self) -> None:
        loop = asyncio.get_running_loop()
        min_gap = self.settings.min_time_ms / 1000.0

        while self._queue and self._running < self.settings.max_concurrent:
            now = loop.time()
            if now < self._next_start_at:
                if self._wakeup is None:
                    self._wakeup = loop.call_at(self._next_start_at, self._on_wakeup)
                return

            pending = self._queue.popleft()
            self._running += 1
            self._next_start_at = now + min_gap
            task = loop.create_task(self._run(pending))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _on_wakeup(self) -> None:
        self._wakeup = None
        self._schedule()

    async def _run(self, pending: _Pending) -> None:
        loop = asyncio.get_running_loop()
        job = pending.job
        try:
            result = await pending.execute_fn(*pending.args)
        except asyncio.CancelledError:
            if not pending.future.done():
                pending.future.cancel()
            raise
        except Exception as e:
            if not pending.future.done():
                pending.future.set_exception(e)
        else:
            if not pending.future.done():
                pending.future.set_result(result)
        finally:
            self._running -= 1
            self._done += 1
            self._received -= 1
            self._check_expiration(job, loop.time())
            self._emit(DONE, job)
            if self._received == 0:
                self._emit(IDLE)
            self._schedule()

    def _check_expiration(self, job: Job, now: float) -> None:
        if not job.expiration_ms:
            return
        elapsed_ms = (now - job.submitted_at) * 1000
        if elapsed_ms > job.expiration_ms:
            job.expired = True
            logger.warning(
                f"Job {job.sequence_id} took {elapsed_ms:.0f}ms, "
                f"exceeding its {job.expiration_ms}ms expiration"
            )

    def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception as e:
                logger.exception(f"Limiter '{event}' listener failed: {e}")
