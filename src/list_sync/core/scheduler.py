"""
Sync Worker - runs sync cycles on a schedule.

- Continuous mode repeats cycles every ``poll_interval_seconds``; a failed
  cycle is logged and retried after ``retry_delay_seconds``. Errors never
  end continuous mode.
- Single-run mode runs one cycle and reports success or failure through
  the exit code.
- SIGINT/SIGTERM cancel the shared token. The in-flight cycle gets up to
  ``shutdown_grace_seconds`` to reach a checkpoint before it is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Callable

from list_sync.config import SyncOptions
from list_sync.core.cancellation import CancellationToken
from list_sync.core.engine import CycleResult, SyncEngine
from list_sync.errors import SyncError, TransportError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


def log_failure(exc: BaseException) -> None:
    """Log a cycle failure with whatever transport detail it carries."""
    logger.error(
        "Sync failed with error: %s",
        exc,
        exc_info=not isinstance(exc, SyncError),
    )
    if isinstance(exc, TransportError) and exc.has_response:
        logger.error("  Status: %s %s", exc.status, exc.reason)
        logger.error("  Headers: %s", exc.headers)
        logger.error("  Body: %s", exc.body_preview())


class SyncWorker:
    """
    Scheduler around a SyncEngine.

    Example:
        worker = SyncWorker(engine, settings.sync)
        exit_code = await worker.serve()
    """

    def __init__(
        self,
        engine: SyncEngine,
        options: SyncOptions,
        token: CancellationToken | None = None,
        on_cycle: Callable[[CycleResult], None] | None = None,
        on_failure: Callable[[BaseException], None] | None = None,
    ) -> None:
        self.engine = engine
        self.options = options
        self.token = token or CancellationToken()
        self.on_cycle = on_cycle
        self.on_failure = on_failure
        self.cycles_completed = 0
        self.cycles_failed = 0

    def request_shutdown(self, signal_name: str = "shutdown") -> None:
        """Ask the worker to stop at its next checkpoint."""
        if self.token.cancelled:
            return
        logger.warning("%s received. Shutting down gracefully...", signal_name)
        self.token.cancel(signal_name)

    async def run_forever(self) -> int:
        """Run cycles until cancelled (or once, in single-run mode)."""
        interval = self.options.poll_interval_seconds
        logger.info("List Sync worker starting...")
        logger.info("Mode: %s", "Single run" if self.options.run_once else "Continuous")
        if not self.options.run_once:
            logger.info("Poll interval: %d seconds", interval)

        while not self.token.cancelled:
            try:
                result = await self.engine.run_cycle(self.token)
            except Exception as e:
                self.cycles_failed += 1
                log_failure(e)
                if self.on_failure:
                    self.on_failure(e)
                if self.options.run_once:
                    return EXIT_FAILED

                delay = self.options.retry_delay_seconds
                logger.info("Retrying in %d seconds...", delay)
                await self.token.sleep(delay)
                continue

            self.cycles_completed += 1
            if self.on_cycle:
                self.on_cycle(result)

            if self.options.run_once:
                logger.info("Single run completed. Exiting...")
                break

            if not self.token.cancelled:
                logger.info("Waiting %d seconds until next sync...", interval)
                await self.token.sleep(interval)

        logger.info("Worker stopped gracefully.")
        return EXIT_OK

    async def serve(self, install_signal_handlers: bool = True) -> int:
        """
        Run the worker with signal handling and a bounded shutdown grace period.

        Returns:
            Process exit code
        """
        loop = asyncio.get_running_loop()
        if install_signal_handlers:
            self._install_signal_handlers(loop)

        worker = asyncio.create_task(self.run_forever(), name="list-sync-worker")
        stopping = asyncio.create_task(self.token.wait(), name="list-sync-shutdown")
        try:
            await asyncio.wait({worker, stopping}, return_when=asyncio.FIRST_COMPLETED)
            if worker.done():
                return worker.result()

            grace = self.options.shutdown_grace_seconds
            logger.info("Waiting up to %d seconds for current sync to complete...", grace)
            try:
                return await asyncio.wait_for(worker, timeout=grace)
            except TimeoutError:
                logger.warning("Current sync did not finish within %d seconds; terminating.", grace)
                return EXIT_OK
        finally:
            stopping.cancel()
            if install_signal_handlers:
                self._remove_signal_handlers(loop)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(
                    sig,
                    lambda signum, _frame: loop.call_soon_threadsafe(
                        self.request_shutdown, signal.Signals(signum).name
                    ),
                )

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
