"""Periodic polling tasks with explicit cancellation tokens."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)


class CancellationToken:
    """Marks one polling run. Ticks check it before applying a response."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


Tick = Callable[[CancellationToken], Awaitable[object]]


class PollingTimer:
    """At most one periodic task of a given kind.

    ``start`` cancels any previous run first. Cancelling wakes the sleeping
    loop at once; a tick already awaiting the log finishes its round trip and
    is expected to discard the result after checking its token.
    """

    def __init__(self, name: str, interval: float) -> None:
        self.name = name
        self.interval = interval
        self._token: CancellationToken | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def start(self, tick: Tick) -> CancellationToken:
        self.stop()
        token = CancellationToken()
        self._token = token
        self._task = asyncio.get_running_loop().create_task(self._run(tick, token), name=f"poll-{self.name}")
        logger.debug("Started %s polling every %ss", self.name, self.interval)
        return token

    def stop(self) -> None:
        if self._token is not None and not self._token.cancelled:
            self._token.cancel()
            logger.debug("Stopped %s polling", self.name)
        self._token = None

    async def wait_stopped(self) -> None:
        """Wait for the current task to exit."""
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self, tick: Tick, token: CancellationToken) -> None:
        while True:
            try:
                await asyncio.wait_for(token.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if token.cancelled:
                return
            try:
                await tick(token)
            except Exception:
                logger.exception("Stopping %s polling after unhandled error", self.name)
                token.cancel()
                return
