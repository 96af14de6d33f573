"""
Shared test fixtures and configuration for pytest.
"""

import sys
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from batchload.core.errors import StaleVersionError
from batchload.core.models import Record, RequestSpec, TransportResponse
from batchload.core.processor import RecordProcessor, ResultObserver
from batchload.core.run_store import RunStore
from batchload.core.transport import Transport


# ============================================================================
# Test doubles
# ============================================================================

class FakeTransport(Transport):
    """
    Transport that records requests and tracks peak concurrency.

    ``responder`` maps a RequestSpec to a TransportResponse; the default
    answers 200 with an empty JSON body.
    """

    def __init__(
        self,
        responder: Optional[Callable[[RequestSpec], TransportResponse]] = None,
        delay: float = 0.0,
    ):
        self.responder = responder or (lambda request: TransportResponse(status_code=200, body={}))
        self.delay = delay
        self.requests: List[RequestSpec] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def send(self, request: RequestSpec) -> TransportResponse:
        with self._lock:
            self.requests.append(request)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.responder(request)
        finally:
            with self._lock:
                self.in_flight -= 1

    def get_name(self) -> str:
        return "fake"


class MemoryRunStore(RunStore):
    """In-memory run store with optimistic version checks."""

    def __init__(self, fail_create: bool = False, fail_update: bool = False):
        self.fail_create = fail_create
        self.fail_update = fail_update
        self.runs: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Tuple[str, str, Dict[str, Any]]] = []
        self.results: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def create_run(self, metadata: Dict[str, Any]) -> Tuple[str, str]:
        if self.fail_create:
            raise RuntimeError("store unavailable")
        run_id = str(uuid.uuid4())
        with self._lock:
            self.runs[run_id] = {"version": 1, "metadata": metadata, "stats": None}
        return run_id, "1"

    def update_run(self, run_id: str, version_token: str, stats: Dict[str, Any]) -> str:
        if self.fail_update:
            raise RuntimeError("store unavailable")
        with self._lock:
            run = self.runs[run_id]
            if str(run["version"]) != version_token:
                raise StaleVersionError(f"stale version {version_token}")
            run["version"] += 1
            run["stats"] = stats
            self.updates.append((run_id, version_token, stats))
            return str(run["version"])

    def write_result(self, result: Dict[str, Any]) -> None:
        with self._lock:
            self.results.append(result)

    def get_name(self) -> str:
        return "memory"


class EchoProcessor(RecordProcessor):
    """Sends each line as ``{"line": raw_text}``."""

    def __init__(self):
        self.started = 0
        self.ended = 0

    def transform(self, record: Record):
        return {"body": {"line": record.raw_text}}, None

    def on_run_start(self) -> None:
        self.started += 1

    def on_run_end(self) -> None:
        self.ended += 1


class FunctionProcessor(RecordProcessor):
    """Delegates transform() to a plain function."""

    def __init__(self, fn: Callable[[Record], Any]):
        self.fn = fn

    def transform(self, record: Record):
        return self.fn(record)


class CollectingObserver(ResultObserver):
    """Collects every result it is given."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.results = []

    def on_each_result(self, result) -> None:
        self.results.append(result)
        if self.fail:
            raise RuntimeError("observer failed")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def write_lines(tmp_path: Path) -> Callable[..., Path]:
    """Fixture returning a helper that writes lines to a temp file."""

    def _write(lines: List[str], name: str = "input.txt", newline: str = "\n") -> Path:
        path = tmp_path / name
        content = newline.join(lines) + (newline if lines else "")
        path.write_bytes(content.encode("utf-8"))
        return path

    return _write


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def memory_store() -> MemoryRunStore:
    return MemoryRunStore()


@pytest.fixture
def echo_processor() -> EchoProcessor:
    return EchoProcessor()


@pytest.fixture
def clean_env() -> Dict[str, str]:
    """Empty environment mapping so host variables never leak into a test."""
    return {}
