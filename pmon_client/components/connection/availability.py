"""
Server availability monitor.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from pmon_client.components.connection.timers import ScheduledTask
from pmon_client.config.logging import get_logger

logger = get_logger(__name__)


class AvailabilityMonitor:
    """
    Probes the service root on an interval and reacts to edges.

    On a down -> up edge it calls on_recovered (the channel connect), so a
    client that gave up reconnecting resumes once the service is back.
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]],
        on_recovered: Callable[[], Awaitable[None] | None],
        on_change: Callable[[bool], None] | None = None,
        interval: float = 2.0,
    ) -> None:
        self._probe = probe
        self._on_recovered = on_recovered
        self._on_change = on_change
        self._interval = interval
        self._timer = ScheduledTask("availability")
        self._available: bool | None = None

    @property
    def available(self) -> bool | None:
        """Last observed availability; None before the first probe."""
        return self._available

    @property
    def active(self) -> bool:
        return self._timer.active

    def start(self) -> None:
        self._timer.start_interval(self._interval, self.check, immediate=True)

    def stop(self) -> None:
        self._timer.cancel()

    async def check(self) -> bool:
        """Probe once and fire callbacks on a change."""
        available = await self._probe()
        previous, self._available = self._available, available
        if available == previous:
            return available

        logger.info("Server availability changed", available=available)
        if self._on_change is not None:
            self._on_change(available)
        if available and previous is False:
            result = self._on_recovered()
            if result is not None:
                await result
        return available
