"""
Owned, cancellable timers.

Every periodic or delayed action of the client (heartbeat, reconnect
backoff, log polling, availability probing) runs in a ScheduledTask owned by
exactly one component, which cancels it on every state exit.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

from pmon_client.config.logging import get_logger

logger = get_logger(__name__)

Callback = Callable[[], Awaitable[Any] | Any]


async def _invoke(callback: Callback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


class ScheduledTask:
    """
    A single asyncio task that fires a callback once or on an interval.

    Starting a task that is already active replaces it. Callback errors in
    interval mode are logged and the next tick still runs.

    Usage:
        heartbeat = ScheduledTask("heartbeat")
        heartbeat.start_interval(30.0, send_heartbeat)
        ...
        heartbeat.cancel()
    """

    def __init__(self, name: str):
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self._fired = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def fired(self) -> int:
        """Number of times the callback has been invoked."""
        return self._fired

    def start_once(self, delay: float, callback: Callback) -> None:
        """Fire callback once after delay seconds."""
        self.cancel()
        self._task = asyncio.create_task(self._run_once(delay, callback), name=self._name)

    def start_interval(self, interval: float, callback: Callback, immediate: bool = False) -> None:
        """Fire callback every interval seconds, optionally once right away."""
        self.cancel()
        self._task = asyncio.create_task(
            self._run_interval(interval, callback, immediate),
            name=self._name,
        )

    def cancel(self) -> None:
        """Stop the task. Safe to call from inside the callback itself."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # Cancelled from inside the callback: the loop exits after it returns.
            return
        task.cancel()

    async def _run_once(self, delay: float, callback: Callback) -> None:
        await asyncio.sleep(delay)
        self._fired += 1
        await _invoke(callback)

    async def _run_interval(self, interval: float, callback: Callback, immediate: bool) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            self._fired += 1
            try:
                await _invoke(callback)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Scheduled callback failed", timer=self._name, error=str(e))
            if self._task is not asyncio.current_task():
                return
            await asyncio.sleep(interval)
