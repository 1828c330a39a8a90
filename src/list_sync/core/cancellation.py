"""Cooperative cancellation for the sync loop."""

from __future__ import annotations

import asyncio
import contextlib


class CancellationToken:
    """
    A one-way shutdown flag that can also interrupt waits.

    Work checks ``cancelled`` at its own checkpoints; in-flight network
    calls are never interrupted. ``sleep`` is a timer that returns early
    as soon as the token is cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for ``seconds`` unless cancelled first.

        Returns True if the sleep was cut short by cancellation.
        """
        if self.cancelled:
            return True
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        return self.cancelled
