"""
Connection state value objects.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from pmon_client.config.constants import SUBSCRIBED_CHANNELS


class ConnectionState(str, Enum):
    """
    Lifecycle of the real-time channel.

    Heartbeat timer is active iff OPEN; reconnect timer is active iff RECONNECTING.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True, slots=True)
class Subscription:
    """
    What the client wants pushed to it. Survives reconnects.

    Attributes:
        channels: Fixed channel set re-issued on every open.
        log_file: Active log file, or None.
        offset: Last consumed position in log_file; only moves forward.
    """

    channels: tuple[str, ...] = SUBSCRIBED_CHANNELS
    log_file: str | None = None
    offset: int = 0

    def select(self, log_file: str | None, offset: int) -> Subscription:
        """Switch to a log file; re-selecting the same file keeps the larger offset."""
        if log_file is None:
            return replace(self, log_file=None, offset=0)
        if log_file == self.log_file:
            return replace(self, offset=max(self.offset, offset))
        return replace(self, log_file=log_file, offset=max(0, offset))

    def advance(self, log_file: str | None, offset: int) -> Subscription:
        """Record consumed lines; offsets for other files or going backwards are ignored."""
        if self.log_file is None or log_file not in (None, self.log_file):
            return self
        if offset <= self.offset:
            return self
        return replace(self, offset=offset)


@dataclass(frozen=True, slots=True)
class MachineState:
    """
    Complete state of the connection state machine.

    Attributes:
        connection: Current channel state.
        attempt: Reconnects scheduled since the last successful open.
        subscription: Channel and log subscription intent.
        intentional_close: The client closed the channel on purpose.
        gave_up: Reconnect attempts are exhausted.
    """

    connection: ConnectionState = ConnectionState.DISCONNECTED
    attempt: int = 0
    subscription: Subscription = Subscription()
    intentional_close: bool = False
    gave_up: bool = False
