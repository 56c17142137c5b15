"""
Connection state machine.

Pure transition function over (state, event). The ConnectionManager feeds
every transport event, timer tick and caller request through
ConnectionMachine.transition() and executes the returned commands in order.
Nothing here touches the network, timers or the clock, so every transition
is testable with plain values.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union, assert_never

from pmon_client.components.connection.state import ConnectionState, MachineState
from pmon_client.components.resilience.retry import ReconnectPolicy
from pmon_client.config.constants import ChannelCloseCode, OutboundType

# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ConnectRequested:
    pass


@dataclass(frozen=True, slots=True)
class TransportOpened:
    pass


@dataclass(frozen=True, slots=True)
class TransportClosed:
    code: int
    reason: str = ""


@dataclass(frozen=True, slots=True)
class TransportFailed:
    error: str


@dataclass(frozen=True, slots=True)
class ReconnectDue:
    pass


@dataclass(frozen=True, slots=True)
class HeartbeatDue:
    pass


@dataclass(frozen=True, slots=True)
class CloseRequested:
    pass


@dataclass(frozen=True, slots=True)
class LogSubscriptionRequested:
    file: str | None
    offset: int = 0


@dataclass(frozen=True, slots=True)
class LogOffsetAdvanced:
    file: str | None
    offset: int


Event = Union[
    ConnectRequested,
    TransportOpened,
    TransportClosed,
    TransportFailed,
    ReconnectDue,
    HeartbeatDue,
    CloseRequested,
    LogSubscriptionRequested,
    LogOffsetAdvanced,
]


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True, slots=True)
class OpenTransport:
    pass


@dataclass(frozen=True, slots=True)
class CloseTransport:
    code: int = ChannelCloseCode.NORMAL


@dataclass(frozen=True, slots=True)
class SendFrame:
    payload: dict[str, Any] = field(hash=False)


@dataclass(frozen=True, slots=True)
class StartHeartbeat:
    interval: float


@dataclass(frozen=True, slots=True)
class StopHeartbeat:
    pass


@dataclass(frozen=True, slots=True)
class ScheduleReconnect:
    delay: float
    attempt: int


@dataclass(frozen=True, slots=True)
class CancelReconnect:
    pass


@dataclass(frozen=True, slots=True)
class StartPolling:
    file: str


@dataclass(frozen=True, slots=True)
class StopPolling:
    pass


@dataclass(frozen=True, slots=True)
class ReportStatus:
    state: ConnectionState
    terminal: bool = False


Command = Union[
    OpenTransport,
    CloseTransport,
    SendFrame,
    StartHeartbeat,
    StopHeartbeat,
    ScheduleReconnect,
    CancelReconnect,
    StartPolling,
    StopPolling,
    ReportStatus,
]

Transition = tuple[MachineState, list[Command]]


# =============================================================================
# Outbound frames
# =============================================================================


def subscribe_frame(channels: tuple[str, ...]) -> SendFrame:
    return SendFrame({"type": OutboundType.SUBSCRIBE.value, "channels": list(channels)})


def subscribe_log_frame(file: str, offset: int) -> SendFrame:
    return SendFrame({"type": OutboundType.SUBSCRIBE_LOG.value, "file": file, "startPos": offset})


def unsubscribe_log_frame() -> SendFrame:
    return SendFrame({"type": OutboundType.UNSUBSCRIBE_LOG.value})


def get_log_files_frame() -> SendFrame:
    return SendFrame({"type": OutboundType.GET_LOG_FILES.value})


def heartbeat_frame() -> SendFrame:
    return SendFrame({"type": OutboundType.HEARTBEAT.value})


# =============================================================================
# Machine
# =============================================================================


class ConnectionMachine:
    """
    Transition table of the real-time channel.

    States: DISCONNECTED -> CONNECTING -> OPEN -> DISCONNECTED (normal close)
    or -> RECONNECTING (any other close, or a failed connect). RECONNECTING
    waits base_delay * multiplier ^ attempt before the next CONNECTING; after
    max_attempts the machine gives up and reports a terminal DISCONNECTED.
    """

    def __init__(self, policy: ReconnectPolicy | None = None, heartbeat_interval: float = 30.0):
        """
        Args:
            policy: Reconnect schedule (defaults: 2s base, x2, 5 attempts).
            heartbeat_interval: Seconds between liveness frames while OPEN.
        """
        self.policy = policy or ReconnectPolicy()
        self.heartbeat_interval = heartbeat_interval

    def transition(self, state: MachineState, event: Event) -> Transition:
        """
        Compute the next state and the commands to execute.

        Args:
            state: Current machine state (not modified).
            event: What happened.

        Returns:
            (next_state, commands) with commands in execution order.
        """
        match event:
            case ConnectRequested():
                return self._on_connect_requested(state)
            case TransportOpened():
                return self._on_opened(state)
            case TransportClosed(code=code):
                return self._on_closed(state, code)
            case TransportFailed():
                return self._on_failed(state)
            case ReconnectDue():
                return self._on_reconnect_due(state)
            case HeartbeatDue():
                if state.connection is ConnectionState.OPEN:
                    return state, [heartbeat_frame()]
                return state, []
            case CloseRequested():
                return self._on_close_requested(state)
            case LogSubscriptionRequested(file=file, offset=offset):
                return self._on_log_selected(state, file, offset)
            case LogOffsetAdvanced(file=file, offset=offset):
                return replace(state, subscription=state.subscription.advance(file, offset)), []
            case _:
                assert_never(event)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _on_connect_requested(self, state: MachineState) -> Transition:
        if state.connection in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return state, []

        commands: list[Command] = []
        if state.connection is ConnectionState.RECONNECTING:
            commands.append(CancelReconnect())

        new_state = replace(
            state,
            connection=ConnectionState.CONNECTING,
            intentional_close=False,
            gave_up=False,
        )
        commands += [ReportStatus(ConnectionState.CONNECTING), OpenTransport()]
        return new_state, commands

    def _on_opened(self, state: MachineState) -> Transition:
        if state.connection is not ConnectionState.CONNECTING:
            # Late open after an intentional close or a superseded attempt
            return state, [CloseTransport(ChannelCloseCode.NORMAL)]

        subscription = state.subscription
        commands: list[Command] = [
            ReportStatus(ConnectionState.OPEN),
            StartHeartbeat(self.heartbeat_interval),
            subscribe_frame(subscription.channels),
        ]
        if subscription.log_file is not None:
            commands += [
                subscribe_log_frame(subscription.log_file, subscription.offset),
                StopPolling(),
            ]
        commands.append(get_log_files_frame())

        return replace(state, connection=ConnectionState.OPEN, attempt=0, gave_up=False), commands

    def _on_closed(self, state: MachineState, code: int) -> Transition:
        if state.connection not in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            return state, []

        commands: list[Command] = []
        if state.connection is ConnectionState.OPEN:
            commands.append(StopHeartbeat())
        if state.subscription.log_file is not None:
            commands.append(StartPolling(state.subscription.log_file))

        if code == ChannelCloseCode.NORMAL:
            commands.append(ReportStatus(ConnectionState.DISCONNECTED))
            return replace(state, connection=ConnectionState.DISCONNECTED), commands

        return self._schedule_reconnect(state, commands)

    def _on_failed(self, state: MachineState) -> Transition:
        return self._on_closed(state, ChannelCloseCode.ABNORMAL)

    def _on_reconnect_due(self, state: MachineState) -> Transition:
        if state.connection is not ConnectionState.RECONNECTING:
            return state, []
        return (
            replace(state, connection=ConnectionState.CONNECTING),
            [ReportStatus(ConnectionState.CONNECTING), OpenTransport()],
        )

    def _on_close_requested(self, state: MachineState) -> Transition:
        commands: list[Command] = []
        match state.connection:
            case ConnectionState.OPEN:
                commands += [StopHeartbeat(), CloseTransport(ChannelCloseCode.NORMAL)]
            case ConnectionState.CONNECTING:
                commands.append(CloseTransport(ChannelCloseCode.NORMAL))
            case ConnectionState.RECONNECTING:
                commands.append(CancelReconnect())
            case ConnectionState.DISCONNECTED:
                pass
        commands += [StopPolling(), ReportStatus(ConnectionState.DISCONNECTED)]
        return (
            replace(state, connection=ConnectionState.DISCONNECTED, intentional_close=True),
            commands,
        )

    def _schedule_reconnect(self, state: MachineState, commands: list[Command]) -> Transition:
        if not self.policy.can_retry(state.attempt):
            commands.append(ReportStatus(ConnectionState.DISCONNECTED, terminal=True))
            return replace(state, connection=ConnectionState.DISCONNECTED, gave_up=True), commands

        delay = self.policy.delay_for(state.attempt)
        attempt = state.attempt + 1
        commands += [
            ReportStatus(ConnectionState.RECONNECTING),
            ScheduleReconnect(delay, attempt),
        ]
        return replace(state, connection=ConnectionState.RECONNECTING, attempt=attempt), commands

    # =========================================================================
    # Log subscription
    # =========================================================================

    def _on_log_selected(self, state: MachineState, file: str | None, offset: int) -> Transition:
        previous = state.subscription
        subscription = previous.select(file, offset)
        is_open = state.connection is ConnectionState.OPEN
        commands: list[Command] = []

        if is_open and previous.log_file is not None and previous.log_file != file:
            commands.append(unsubscribe_log_frame())

        if subscription.log_file is None:
            commands.append(StopPolling())
        elif is_open:
            commands += [
                subscribe_log_frame(subscription.log_file, subscription.offset),
                StopPolling(),
            ]
        else:
            commands.append(StartPolling(subscription.log_file))

        return replace(state, subscription=subscription), commands
