"""
Unit tests for the batch runner.

These tests drive complete runs against in-memory doubles for the transport
and the run store.
"""

import asyncio
import time
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import (
    CollectingObserver, EchoProcessor, FakeTransport, FunctionProcessor, MemoryRunStore,
)

from batchload.config.options import Credentials, RunnerConfig, RunOptions
from batchload.core.errors import (
    ConfigurationError, LineSourceError, RunAbortedError, ValidationError,
)
from batchload.core.models import RunState, StatusKind, TransportResponse
from batchload.limiter.admission_controller import AdmissionController
from batchload.runner import BatchRunner, process_file
from batchload.storage import RestRunStore


def options(**overrides) -> RunOptions:
    values = {"base_url": "http://api.local", "endpoint": "/api/Items", "method": "POST"}
    values.update(overrides)
    return RunOptions(**values)


def config(**overrides) -> RunnerConfig:
    values = {"min_time_ms": 0, "progress_interval_ms": 0}
    values.update(overrides)
    return RunnerConfig(**values)


def make_runner(path, processor=None, transport=None, store=None, run_options=None,
                observer=None, runner_config=None, environ=None):
    return BatchRunner(
        file_path=path,
        options=run_options or options(),
        processor=processor or EchoProcessor(),
        transport=transport or FakeTransport(),
        store=store or MemoryRunStore(),
        observer=observer,
        config=runner_config or config(),
        environ={} if environ is None else environ,
    )


class TestScenarios:
    """End-to-end runs over small files."""

    def test_all_succeed_in_order(self, write_lines):
        path = write_lines(["one", "two", "three"])
        transport = FakeTransport()
        store = MemoryRunStore()
        processor = EchoProcessor()
        runner = make_runner(path, processor, transport, store,
                             runner_config=config(max_concurrent=1))

        stats = asyncio.run(runner.run())

        assert (stats.total_record_count, stats.success_count, stats.failure_count) == (3, 3, 0)
        assert [r.body["line"] for r in transport.requests] == ["one", "two", "three"]
        assert runner.tracker.state == RunState.COMPLETED
        assert processor.started == 1 and processor.ended == 1
        assert len(store.updates) == 1
        assert len(store.results) == 3
        assert stats.run_id in store.runs
        assert stats.end_time is not None

    def test_transform_failure_is_counted(self, write_lines):
        path = write_lines(["good", "bad"])

        def transform(record):
            if record.line_number == 2:
                return None, "cannot parse line"
            return {"body": {"line": record.raw_text}}, None

        stats = asyncio.run(make_runner(path, FunctionProcessor(transform)).run())
        assert stats.success_count == 1
        assert stats.failure_count == 1
        assert stats.total_record_count == 2

    def test_unresolvable_endpoint_aborts(self, write_lines):
        path = write_lines(["a", "b", "c"])
        store = MemoryRunStore()
        transport = FakeTransport()
        runner = make_runner(path, transport=transport, store=store,
                             run_options=RunOptions(method="POST"),
                             runner_config=config(max_concurrent=1))

        with pytest.raises(RunAbortedError) as exc_info:
            asyncio.run(runner.run())

        error = exc_info.value
        assert "endpoint" in error.reason
        assert isinstance(error.__cause__, ConfigurationError)
        assert error.stats.total_record_count == 0
        assert transport.requests == []
        assert runner.tracker.state == RunState.ABORTED
        assert len(store.updates) == 1
        assert "endpoint" in store.updates[0][2]["error"]["error_message"]

    def test_transport_errors_complete_with_failures(self, write_lines):
        path = write_lines([f"line {i}" for i in range(5)])
        transport = FakeTransport(lambda req: TransportResponse(error="connection refused"))

        runner = make_runner(path, transport=transport)
        stats = asyncio.run(runner.run())

        assert runner.tracker.state == RunState.COMPLETED
        assert stats.total_record_count == 5
        assert stats.failure_count == stats.total_record_count

    def test_http_error_status_is_failure(self, write_lines):
        path = write_lines(["a", "b"])
        transport = FakeTransport(
            lambda req: TransportResponse(
                status_code=500 if req.body["line"] == "b" else 201, body={}
            )
        )
        stats = asyncio.run(make_runner(path, transport=transport).run())
        assert (stats.success_count, stats.failure_count) == (1, 1)


class TestSkipConvention:
    """Records the processor ignores."""

    def test_skipped_lines_do_not_count(self, write_lines):
        path = write_lines(["# header", "a", "# comment", "b"])
        store = MemoryRunStore()
        observer = CollectingObserver()

        def transform(record):
            if record.raw_text.startswith("#"):
                return None, None
            return {"body": {"line": record.raw_text}}, None

        runner = make_runner(path, FunctionProcessor(transform), store=store, observer=observer)
        stats = asyncio.run(runner.run())

        assert stats.total_record_count == 2
        assert stats.success_count == 2
        assert len(store.results) == 2
        assert len(observer.results) == 2
        assert all(r.status_kind == StatusKind.SUCCESS for r in observer.results)

    def test_all_lines_skipped(self, write_lines):
        path = write_lines(["", "", ""])
        stats = asyncio.run(
            make_runner(path, FunctionProcessor(lambda r: (None, None))).run()
        )
        assert stats.total_record_count == 0


class TestLimits:
    """Backpressure and concurrency bounds."""

    def test_received_never_exceeds_max_queue_size(self, write_lines):
        path = write_lines([f"line {i}" for i in range(40)])
        peak = {"received": 0}
        holder = {}

        def responder(request):
            received = holder["runner"].controller.counts()["RECEIVED"]
            peak["received"] = max(peak["received"], received)
            return TransportResponse(status_code=200, body={})

        runner = make_runner(
            path,
            transport=FakeTransport(responder, delay=0.001),
            runner_config=config(max_concurrent=2, max_queue_size=3),
        )
        holder["runner"] = runner
        stats = asyncio.run(runner.run())

        assert stats.total_record_count == 40
        assert 0 < peak["received"] <= 3

    def test_running_never_exceeds_max_concurrent(self, write_lines):
        path = write_lines([f"line {i}" for i in range(30)])
        transport = FakeTransport(delay=0.01)

        stats = asyncio.run(
            make_runner(path, transport=transport, runner_config=config(max_concurrent=4)).run()
        )
        assert stats.success_count == 30
        assert 1 < transport.max_in_flight <= 4

    def test_expired_jobs_are_counted(self, write_lines):
        path = write_lines(["a", "b"])
        transport = FakeTransport(delay=0.03)
        stats = asyncio.run(
            make_runner(path, transport=transport,
                        runner_config=config(job_expiration_ms=1)).run()
        )
        assert stats.expired_count == 2
        assert stats.success_count == 2


class TestAbort:
    """Systemic failures."""

    def test_fatal_error_stops_admission(self, write_lines):
        path = write_lines([f"line {i}" for i in range(1, 11)])
        transport = FakeTransport()
        store = MemoryRunStore()
        processor = EchoProcessor()

        def transform(record):
            if record.line_number == 3:
                raise KeyError("broken processor")
            return {"body": {"line": record.raw_text}}, None

        processor.transform = transform
        runner = make_runner(path, processor, transport, store,
                             runner_config=config(max_concurrent=1))

        with pytest.raises(RunAbortedError) as exc_info:
            asyncio.run(runner.run())

        stats = exc_info.value.stats
        assert stats.total_record_count == 2
        assert len(transport.requests) == 2
        assert processor.ended == 0
        assert len(store.updates) == 1

    def test_login_failure_creates_no_run(self, write_lines):
        path = write_lines(["a"])
        store = MemoryRunStore()
        transport = FakeTransport(lambda req: TransportResponse(status_code=401, body={}))
        run_options = options(credentials=Credentials(username="u", password="p"))

        with pytest.raises(RunAbortedError) as exc_info:
            asyncio.run(make_runner(path, transport=transport, store=store,
                                    run_options=run_options).run())

        assert "Login rejected" in exc_info.value.reason
        assert store.runs == {}
        assert store.updates == []

    def test_run_creation_failure(self, write_lines):
        path = write_lines(["a"])
        store = MemoryRunStore(fail_create=True)
        transport = FakeTransport()

        with pytest.raises(RunAbortedError):
            asyncio.run(make_runner(path, transport=transport, store=store).run())
        assert transport.requests == []

    def test_read_fault_aborts(self, tmp_path):
        path = tmp_path / "bad.txt"
        path.write_bytes(b"ok\n\xff\xfe\n")
        store = MemoryRunStore()

        with pytest.raises(RunAbortedError) as exc_info:
            asyncio.run(make_runner(path, store=store).run())
        assert isinstance(exc_info.value.__cause__, LineSourceError)
        assert len(store.updates) == 1

    def test_limiter_fault_aborts(self, write_lines):
        path = write_lines(["a", "b", "c"])
        transport = FakeTransport()
        store = MemoryRunStore()
        runner = make_runner(path, transport=transport, store=store)

        with patch.object(AdmissionController, "_start_eligible",
                          side_effect=RuntimeError("scheduler broke")):
            with pytest.raises(RunAbortedError) as exc_info:
                asyncio.run(runner.run())

        assert "Admission controller fault: scheduler broke" in exc_info.value.reason
        assert runner.tracker.state == RunState.ABORTED
        assert transport.requests == []
        assert len(store.updates) == 1

    def test_observer_failure_does_not_abort(self, write_lines):
        path = write_lines(["a", "b"])
        stats = asyncio.run(
            make_runner(path, observer=CollectingObserver(fail=True)).run()
        )
        assert stats.success_count == 2


class TestValidation:
    """Input validation before a run is created."""

    def test_missing_file(self, tmp_path):
        store = MemoryRunStore()
        with pytest.raises(ValidationError):
            asyncio.run(make_runner(tmp_path / "missing.txt", store=store).run())
        assert store.runs == {}

    def test_empty_path(self):
        with pytest.raises(ValidationError):
            make_runner("")

    def test_invalid_processor(self, write_lines):
        path = write_lines(["a"])
        with pytest.raises(ValidationError):
            BatchRunner(path, options(), object(), FakeTransport(), MemoryRunStore())

    def test_invalid_tunables(self, write_lines):
        path = write_lines(["a"])
        with pytest.raises(ValidationError):
            make_runner(path, runner_config=config(max_concurrent=0))

    def test_runner_is_single_use(self, write_lines):
        path = write_lines(["a"])
        runner = make_runner(path)
        asyncio.run(runner.run())
        with pytest.raises(ValidationError):
            asyncio.run(runner.run())


class TestEdgeCases:
    """Empty input and the convenience entry point."""

    def test_empty_file_completes(self, write_lines):
        path = write_lines([])
        store = MemoryRunStore()
        runner = make_runner(path, store=store)
        stats = asyncio.run(runner.run())

        assert runner.tracker.state == RunState.COMPLETED
        assert stats.total_record_count == 0
        assert len(store.updates) == 1

    def test_process_file(self, write_lines):
        path = write_lines(["a", "b"])
        stats = asyncio.run(process_file(
            path, options(), EchoProcessor(), FakeTransport(), MemoryRunStore(),
            config=config(), environ={},
        ))
        assert stats.success_count == 2

    def test_token_from_environment_is_sent(self, write_lines):
        path = write_lines(["a"])
        transport = FakeTransport()
        asyncio.run(make_runner(path, transport=transport,
                                environ={"BATCHLOAD_ACCESS_TOKEN": "env-token"}).run())
        assert transport.requests[0].params == {"access_token": "env-token"}


class TestPersistence:
    """Run store interaction."""

    def test_login_token_reaches_rest_store(self, write_lines):
        path = write_lines(["a", "b"])

        def responder(request):
            if request.endpoint.endswith("/api/users/login"):
                return TransportResponse(status_code=200, body={"id": "login-tok"})
            return TransportResponse(status_code=200, body={})

        session = MagicMock(spec=requests.Session)
        reply = MagicMock()
        reply.status_code = 200
        reply.json.return_value = {"_version": "v1"}
        session.request.return_value = reply
        store = RestRunStore("http://api.local", session=session)
        run_options = options(credentials=Credentials(username="u", password="p"))

        stats = asyncio.run(make_runner(path, transport=FakeTransport(responder),
                                        store=store, run_options=run_options).run())

        assert stats.success_count == 2
        calls = session.request.call_args_list
        assert calls[0][0] == ("POST", "http://api.local/api/BatchRuns")
        assert all(c[1]["params"] == {"access_token": "login-tok"} for c in calls)
        assert [c[0][0] for c in calls].count("PUT") == 1

    def test_slow_store_does_not_delay_requests(self, write_lines):
        path = write_lines([f"line {i}" for i in range(20)])
        send_times = []

        def responder(request):
            send_times.append(time.monotonic())
            return TransportResponse(status_code=200, body={})

        class SlowStore(MemoryRunStore):
            def write_result(self, result):
                time.sleep(0.2)
                super().write_result(result)

        store = SlowStore()
        stats = asyncio.run(make_runner(
            path, transport=FakeTransport(responder), store=store,
            runner_config=config(max_concurrent=1, store_workers=4),
        ).run())

        assert stats.success_count == 20
        assert send_times[-1] - send_times[0] < 0.2
        assert len(store.results) == 20
