"""
HTTP polling fallback for log tailing while the channel is down.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from pmon_client.components.connection.timers import ScheduledTask
from pmon_client.config.logging import get_logger
from pmon_client.infrastructure.http import ServiceHttpClient
from pmon_client.utils.exceptions import TransportError

logger = get_logger(__name__)


class LogPoller:
    """
    Polls /logs/read for one file: immediately, then every interval.

    The poller does not own the offset. It reads it through get_offset and
    reports lines through on_lines(file, lines, last_id), so the channel and
    the poller advance one shared position.
    """

    def __init__(
        self,
        http: ServiceHttpClient,
        get_offset: Callable[[str], int],
        on_lines: Callable[[str, list[str], int | None], Awaitable[None]],
        interval: float = 3.0,
        limit: int = 1000,
    ) -> None:
        self._http = http
        self._get_offset = get_offset
        self._on_lines = on_lines
        self._interval = interval
        self._limit = limit
        self._timer = ScheduledTask("log_poll")
        self._file: str | None = None
        self._polls = 0
        self._failures = 0

    @property
    def active(self) -> bool:
        return self._timer.active

    @property
    def file(self) -> str | None:
        return self._file if self.active else None

    def start(self, file: str) -> None:
        """Start polling file. No-op if already polling the same file."""
        if self.active and self._file == file:
            return
        self._file = file
        logger.info("Polling log file over HTTP", file=file, interval=self._interval)
        self._timer.start_interval(self._interval, self.poll_once, immediate=True)

    def stop(self) -> None:
        if self.active:
            logger.debug("Log polling stopped", file=self._file)
        self._timer.cancel()
        self._file = None

    async def poll_once(self) -> None:
        """Fetch lines after the shared offset. Failures are logged; the next tick retries."""
        file = self._file
        if file is None:
            return
        self._polls += 1
        try:
            result = await self._http.read_log(file, self._get_offset(file), self._limit)
        except TransportError:
            self._failures += 1
            return

        if result.error:
            self._failures += 1
            logger.warning("Log read reported an error", file=file, reason=result.error)
            return
        if file != self._file:
            return
        await self._on_lines(file, result.lines, result.last_id)

    def get_stats(self) -> dict[str, int | str | None]:
        return {"file": self.file, "polls": self._polls, "failures": self._failures}
