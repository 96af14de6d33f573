"""
Result fan-out and progress reporting.

The result sink hands every non-skipped Result to the observer and to the
run store. Neither path can affect the run: observer exceptions and
persistence failures are logged and dropped.
"""

import asyncio
import inspect
import logging
from concurrent.futures import Executor
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.models import Result
from ..core.processor import ResultObserver
from ..core.run_store import RunStore
from ..storage.redaction import ResultRedactor


logger = logging.getLogger(__name__)


class ResultSink:
    """
    Forwards results to the observer and the run store.

    Redacted results are queued and written by a fixed number of writer
    tasks, each holding one thread of the store executor at a time. The
    queue holds at most ``max_pending`` results; ``dispatch`` only waits
    when it is full. ``flush()`` waits for everything queued before final
    stats are written.
    """

    def __init__(
        self,
        store: RunStore,
        observer: Optional[ResultObserver] = None,
        redactor: Optional[ResultRedactor] = None,
        run_id: Optional[Callable[[], Optional[str]]] = None,
        executor: Optional[Executor] = None,
        workers: int = 1,
        max_pending: int = 1000,
    ):
        """
        Initialize the result sink.

        Args:
            store: Run store receiving each result
            observer: Optional observer called with each result
            redactor: Redactor applied before storage
            run_id: Callable returning the current run id
            executor: Executor for blocking store writes
            workers: Number of concurrent store writers
            max_pending: Maximum number of results waiting to be written
        """
        self.store = store
        self.observer = observer
        self.redactor = redactor or ResultRedactor()
        self.run_id = run_id or (lambda: None)
        self.executor = executor
        self.workers = max(1, workers)
        self.max_pending = max(1, max_pending)
        self.persisted = 0
        self.persist_failures = 0
        self._queue: Optional[asyncio.Queue] = None
        self._writers: List[asyncio.Task] = []
        self._writing = 0
        self._observer_tasks: Set[asyncio.Future] = set()

    async def dispatch(self, result: Result) -> None:
        """Fan a result out. Never raises."""
        self._notify_observer(result)
        await self._persist(result)

    def _notify_observer(self, result: Result) -> None:
        if self.observer is None:
            return
        line_number = result.record.line_number
        try:
            outcome = self.observer.on_each_result(result)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._observer_tasks.add(task)
                task.add_done_callback(
                    lambda t: self._on_observer_done(t, line_number)
                )
        except Exception as e:
            logger.exception(f"Result observer failed for line {line_number}: {e}")

    def _on_observer_done(self, task: asyncio.Future, line_number: int) -> None:
        self._observer_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Result observer failed for line {line_number}: {error}")

    async def _persist(self, result: Result) -> None:
        line_number = result.record.line_number
        try:
            document = self.redactor.redact(result.to_dict())
            document["run_id"] = self.run_id()
        except Exception as e:
            self.persist_failures += 1
            logger.error(f"Could not persist result for line {line_number}: {e}")
            return
        self._start_writers()
        await self._queue.put((line_number, document))

    def _start_writers(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.max_pending)
        if not self._writers:
            loop = asyncio.get_running_loop()
            self._writers = [
                loop.create_task(self._write_loop()) for _ in range(self.workers)
            ]

    async def _write_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            line_number, document = await self._queue.get()
            self._writing += 1
            try:
                await loop.run_in_executor(self.executor, self.store.write_result, document)
                self.persisted += 1
            except Exception as e:
                self.persist_failures += 1
                logger.error(f"Result write for line {line_number} failed: {e}")
            finally:
                self._writing -= 1
                self._queue.task_done()

    @property
    def pending(self) -> int:
        """Results queued or being written."""
        queued = self._queue.qsize() if self._queue is not None else 0
        return queued + self._writing

    async def flush(self) -> None:
        """Wait for queued store writes and observer tasks, then stop the writers."""
        if self._queue is not None and self.pending:
            logger.debug(f"Waiting for {self.pending} outstanding result writes")
            await self._queue.join()
        if self._observer_tasks:
            await asyncio.gather(*list(self._observer_tasks), return_exceptions=True)
        self.cancel()

    def cancel(self) -> None:
        """Stop the writer tasks. Results still queued are not written."""
        for task in self._writers:
            task.cancel()
        self._writers = []


class ProgressReporter:
    """
    Logs a snapshot of run counters at a fixed interval.

    Diagnostic only. An interval of 0 disables reporting.
    """

    def __init__(self, snapshot: Callable[[], Dict[str, Any]], interval_ms: int):
        self.snapshot = snapshot
        self.interval_ms = interval_ms
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self.interval_ms <= 0 or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._report_loop())

    async def _report_loop(self) -> None:
        interval = self.interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            try:
                self.log_snapshot()
            except Exception as e:
                logger.warning(f"Progress snapshot failed: {e}")

    def log_snapshot(self) -> None:
        snap = self.snapshot()
        logger.info(
            "Progress: " + ", ".join(f"{key}={value}" for key, value in snap.items())
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
