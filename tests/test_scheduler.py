"""Tests for the sync worker and cancellation token."""

import asyncio
import logging
import os
import signal
import sys

import pytest

from list_sync.config import SyncOptions
from list_sync.core.cancellation import CancellationToken
from list_sync.core.engine import CycleResult
from list_sync.core.scheduler import EXIT_FAILED, EXIT_OK, SyncWorker, log_failure
from list_sync.errors import TransportError


class ScriptedEngine:
    """Stands in for SyncEngine, replaying a list of outcomes."""

    def __init__(self, *outcomes: object, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls = 0

    async def run_cycle(self, token: CancellationToken) -> CycleResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else CycleResult("Requests")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def transport_error() -> TransportError:
    return TransportError(
        "list_items failed with HTTP 503",
        operation="list_items",
        status=503,
        reason="Service Unavailable",
        headers={"retry-after": "30"},
        body=b"busy",
    )


class TestCancellationToken:
    @pytest.mark.asyncio
    async def test_sleep_runs_to_completion(self) -> None:
        """Test an uninterrupted sleep."""
        token = CancellationToken()
        assert await token.sleep(0.01) is False

    @pytest.mark.asyncio
    async def test_sleep_is_interrupted(self) -> None:
        """Test that cancel() wakes a sleeper."""
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)

        assert await asyncio.wait_for(token.sleep(3600), timeout=5) is True

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self) -> None:
        """Test that the first cancel reason wins."""
        token = CancellationToken()
        token.cancel("SIGTERM")
        token.cancel("SIGINT")

        assert token.cancelled
        assert token.reason == "SIGTERM"
        assert await token.sleep(3600) is True


class TestRunForever:
    """Tests for SyncWorker.run_forever()."""


    @pytest.mark.asyncio
    async def test_single_run_success(self) -> None:
        """Test a successful single run."""
        results: list[CycleResult] = []
        engine = ScriptedEngine(CycleResult("Requests"))
        worker = SyncWorker(engine, SyncOptions(run_once=True), on_cycle=results.append)

        assert await worker.run_forever() == EXIT_OK
        assert engine.calls == 1
        assert len(results) == 1
        assert worker.cycles_completed == 1

    @pytest.mark.asyncio
    async def test_single_run_failure_exits_nonzero(self) -> None:
        """Test a failed single run."""
        failures: list[BaseException] = []
        engine = ScriptedEngine(transport_error())
        worker = SyncWorker(engine, SyncOptions(run_once=True), on_failure=failures.append)

        assert await worker.run_forever() == EXIT_FAILED
        assert engine.calls == 1
        assert worker.cycles_failed == 1
        assert isinstance(failures[0], TransportError)

    @pytest.mark.asyncio
    async def test_continuous_mode_retries_after_failure(self) -> None:
        """Test retry after failures in continuous mode."""
        engine = ScriptedEngine(transport_error(), RuntimeError("boom"), CycleResult("Requests"))
        worker = SyncWorker(engine, SyncOptions(retry_delay_seconds=0))
        worker.on_cycle = lambda _: worker.request_shutdown()

        assert await asyncio.wait_for(worker.run_forever(), timeout=5) == EXIT_OK
        assert engine.calls == 3
        assert worker.cycles_failed == 2
        assert worker.cycles_completed == 1

    @pytest.mark.asyncio
    async def test_shutdown_interrupts_poll_wait(self) -> None:
        """Test that shutdown ends the wait between cycles."""
        engine = ScriptedEngine()
        worker = SyncWorker(engine, SyncOptions(poll_interval_seconds=3600))
        loop = asyncio.get_running_loop()
        worker.on_cycle = lambda _: loop.call_later(0.01, worker.request_shutdown, "SIGTERM")

        assert await asyncio.wait_for(worker.run_forever(), timeout=5) == EXIT_OK
        assert engine.calls == 1
        assert worker.token.reason == "SIGTERM"

    @pytest.mark.asyncio
    async def test_cancelled_before_start_runs_nothing(self) -> None:
        """Test shutdown before the first cycle."""
        engine = ScriptedEngine()
        worker = SyncWorker(engine, SyncOptions())
        worker.request_shutdown()

        assert await worker.run_forever() == EXIT_OK
        assert engine.calls == 0


class TestServe:
    """Tests for SyncWorker.serve() shutdown handling."""


    @pytest.mark.asyncio
    async def test_returns_worker_exit_code(self) -> None:
        """Test that serve() returns the worker's exit code."""
        worker = SyncWorker(ScriptedEngine(transport_error()), SyncOptions(run_once=True))
        assert await worker.serve(install_signal_handlers=False) == EXIT_FAILED

    @pytest.mark.asyncio
    async def test_in_flight_cycle_finishes_within_grace(self) -> None:
        """Test that a running cycle may finish within the grace period."""
        engine = ScriptedEngine(delay=0.05)
        worker = SyncWorker(engine, SyncOptions(shutdown_grace_seconds=5))
        asyncio.get_running_loop().call_later(0.01, worker.request_shutdown, "SIGINT")

        exit_code = await asyncio.wait_for(worker.serve(install_signal_handlers=False), timeout=5)

        assert exit_code == EXIT_OK
        assert worker.cycles_completed == 1
        assert engine.calls == 1

    @pytest.mark.asyncio
    async def test_grace_period_expiry_abandons_cycle(self) -> None:
        """Test that a cycle outliving the grace period is abandoned."""
        engine = ScriptedEngine(delay=3600)
        worker = SyncWorker(engine, SyncOptions(shutdown_grace_seconds=0))
        asyncio.get_running_loop().call_later(0.01, worker.request_shutdown)

        exit_code = await asyncio.wait_for(worker.serve(install_signal_handlers=False), timeout=5)

        assert exit_code == EXIT_OK
        assert worker.cycles_completed == 0

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals only")
    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    async def test_process_signal_stops_worker(self, sig: signal.Signals) -> None:
        """Test that a real signal delivered to the process shuts the worker down cleanly."""
        loop = asyncio.get_running_loop()
        engine = ScriptedEngine()
        worker = SyncWorker(engine, SyncOptions(poll_interval_seconds=3600))
        worker.on_cycle = lambda _: loop.call_later(0.01, os.kill, os.getpid(), sig)

        exit_code = await asyncio.wait_for(worker.serve(), timeout=5)

        assert exit_code == EXIT_OK
        assert engine.calls == 1
        assert worker.token.reason == sig.name
        # Handlers are gone once serve() returns
        assert loop.remove_signal_handler(signal.SIGTERM) is False
        assert loop.remove_signal_handler(signal.SIGINT) is False


class TestLogFailure:
    def test_transport_detail_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the response detail logged for transport failures."""
        with caplog.at_level(logging.ERROR, logger="list_sync"):
            log_failure(transport_error())

        assert "Sync failed with error: list_items failed with HTTP 503" in caplog.text
        assert "Status: 503 Service Unavailable" in caplog.text
        assert "retry-after" in caplog.text
        assert "Body: busy" in caplog.text
        assert not any(record.exc_info for record in caplog.records)

    def test_unexpected_errors_include_traceback(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that unexpected errors are logged with a traceback."""
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            with caplog.at_level(logging.ERROR, logger="list_sync"):
                log_failure(e)

        assert caplog.records[0].exc_info is not None
