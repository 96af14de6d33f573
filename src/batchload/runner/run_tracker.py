"""
Run tracker: run identity, lifecycle state and aggregate counters.
"""

import asyncio
import logging
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..core.errors import FatalSystemError, InvalidTransitionError
from ..core.models import Result, RunState, RunStats, StatusKind
from ..core.run_store import RunStore


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    RunState.IDLE: {RunState.INITIALIZING, RunState.ABORTED},
    RunState.INITIALIZING: {RunState.STREAMING, RunState.ABORTED},
    RunState.STREAMING: {RunState.DRAINING, RunState.ABORTED},
    RunState.DRAINING: {RunState.FINALIZING, RunState.ABORTED},
    RunState.FINALIZING: {RunState.COMPLETED, RunState.ABORTED},
    RunState.COMPLETED: set(),
    RunState.ABORTED: set(),
}


class RunTracker:
    """
    Owns the lifecycle and statistics of one run.

    Counters are only updated from the event loop. Finalization is latched:
    the final stats are persisted at most once, whichever path triggers it.
    """

    def __init__(self, store: RunStore, executor: Optional[Executor] = None):
        """
        Initialize the run tracker.

        Args:
            store: Run store for run records
            executor: Executor for blocking store calls
        """
        self.store = store
        self.executor = executor
        self.state = RunState.IDLE
        self.stats = RunStats()
        self.run_created = False
        self._finalizing = False
        self._finalized = asyncio.Event()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def transition(self, new_state: RunState) -> None:
        """
        Move to a new lifecycle state.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot move run from {self.state.value} to {new_state.value}"
            )
        logger.info(f"Run {self.stats.run_id or '-'}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    @property
    def terminal_error(self) -> Optional[str]:
        return self.stats.terminal_error

    def record_terminal_error(self, error: Any) -> None:
        """Keep the first terminal error of the run."""
        if self.stats.terminal_error is None:
            self.stats.terminal_error = str(error)

    async def create_run(self, metadata: Dict[str, Any]) -> str:
        """
        Persist the run record and keep its id and version token.

        Raises:
            FatalSystemError: If the run record could not be created
        """
        self.stats.start_time = datetime.now(timezone.utc)
        metadata = dict(metadata, start_time=self.stats.start_time.isoformat())

        loop = asyncio.get_running_loop()
        try:
            run_id, version = await loop.run_in_executor(
                self.executor, self.store.create_run, metadata
            )
        except FatalSystemError:
            raise
        except Exception as e:
            raise FatalSystemError(f"Could not create run record: {e}") from e

        self.stats.run_id = run_id
        self.stats.version_token = version
        self.run_created = True
        logger.info(f"Created run {run_id} ({self.store.get_name()} store)")
        return run_id

    # =========================================================================
    # Counters
    # =========================================================================

    def record_result(self, result: Result) -> None:
        """Fold one result into the counters. SKIPPED and FATAL are not counted."""
        if not result.counts_toward_totals:
            return
        self.stats.total_record_count += 1
        if result.status_kind == StatusKind.SUCCESS:
            self.stats.success_count += 1
        else:
            self.stats.failure_count += 1

    def record_expired(self) -> None:
        self.stats.expired_count += 1

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "total": self.stats.total_record_count,
            "succeeded": self.stats.success_count,
            "failed": self.stats.failure_count,
        }

    # =========================================================================
    # Finalization
    # =========================================================================

    async def finalize(self) -> RunStats:
        """
        Persist final stats and enter a terminal state. Runs once; later
        callers wait for the first call and get the same stats.
        """
        if self._finalizing:
            await self._finalized.wait()
            return self.stats
        self._finalizing = True

        try:
            if self.state in (RunState.DRAINING,):
                self.transition(RunState.FINALIZING)

            self.stats.end_time = datetime.now(timezone.utc)

            if self.run_created:
                await self._persist_final_stats()
            else:
                logger.info("No run record was created; final stats are not persisted")

            final_state = RunState.ABORTED if self.stats.terminal_error else RunState.COMPLETED
            if self.state != final_state:
                self.transition(final_state)
        finally:
            self._finalized.set()

        return self.stats

    async def _persist_final_stats(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            self.stats.version_token = await loop.run_in_executor(
                self.executor,
                self.store.update_run,
                self.stats.run_id,
                self.stats.version_token,
                self.stats.to_dict(),
            )
            logger.debug(f"Persisted final stats for run {self.stats.run_id}")
        except Exception as e:
            logger.critical(f"Could not persist final stats for run {self.stats.run_id}: {e}")
            self.record_terminal_error(f"Could not persist final run stats: {e}")
