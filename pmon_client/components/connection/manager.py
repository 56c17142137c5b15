"""
Connection Manager for the PMON real-time channel.

Owns the channel lifecycle: connect, heartbeat, reconnect backoff, the
subscription that survives reconnects and the HTTP polling fallback for log
tailing. All decisions are made by ConnectionMachine; this class only feeds
it events and executes the commands it returns.

Usage:
    manager = ConnectionManager(settings, http, collaborator)
    await manager.connect()
    await manager.request_log_subscription("WCCOActrl.log")
    ...
    await manager.close()
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, assert_never

from pmon_client.components.codec import (
    DecodeError,
    DeploymentUpdate,
    HeartbeatAck,
    LogContent,
    LogFileList,
    LogTail,
    Message,
    ServerError,
    ServerNotification,
    StatusSnapshot,
    UnknownMessage,
    UnknownTypeTracker,
    decode,
)
from pmon_client.components.connection.machine import (
    CancelReconnect,
    CloseRequested,
    CloseTransport,
    Command,
    ConnectionMachine,
    ConnectRequested,
    Event,
    HeartbeatDue,
    LogOffsetAdvanced,
    LogSubscriptionRequested,
    OpenTransport,
    ReconnectDue,
    ReportStatus,
    ScheduleReconnect,
    SendFrame,
    StartHeartbeat,
    StartPolling,
    StopHeartbeat,
    StopPolling,
    TransportClosed,
    TransportFailed,
    TransportOpened,
    get_log_files_frame,
)
from pmon_client.components.connection.polling import LogPoller
from pmon_client.components.connection.state import ConnectionState, MachineState, Subscription
from pmon_client.components.connection.timers import ScheduledTask
from pmon_client.components.connection.transport import (
    ChannelTransport,
    TransportFactory,
    websocket_factory,
)
from pmon_client.components.resilience.retry import ReconnectPolicy
from pmon_client.components.upload.progress import DeploymentPhase, DeploymentProgress
from pmon_client.config.constants import ChannelCloseCode, NotificationLevel
from pmon_client.config.logging import get_logger
from pmon_client.config.settings import ClientSettings
from pmon_client.infrastructure.http import ServiceHttpClient
from pmon_client.utils.exceptions import TransportError

if TYPE_CHECKING:
    from pmon_client.collaborators import Collaborator

logger = get_logger(__name__)


class ConnectionManager:
    """
    Reconnecting real-time channel with subscription resume.

    Guarantees:
    - heartbeat timer runs iff the channel is OPEN
    - reconnect timer runs iff the channel is RECONNECTING
    - on every open the channel subscription, and the log subscription at
      the stored offset, are re-issued
    - while a log file is selected and the channel is not OPEN, the file is
      polled over HTTP from the same offset
    """

    def __init__(
        self,
        settings: ClientSettings,
        http: ServiceHttpClient,
        collaborator: Collaborator,
        transport_factory: TransportFactory | None = None,
        machine: ConnectionMachine | None = None,
    ) -> None:
        """
        Initialize the manager. Nothing is opened until connect().

        Args:
            settings: Client settings (channel URL, timings).
            http: HTTP client for the polling fallback and file listing.
            collaborator: Presentation surface.
            transport_factory: Opens a ChannelTransport for a URL (websockets by default).
            machine: State machine (built from settings by default).
        """
        self._url = settings.ws_url
        self._http = http
        self._collaborator = collaborator
        self._transport_factory = transport_factory or websocket_factory(settings.ws_open_timeout)
        self._machine = machine or ConnectionMachine(
            ReconnectPolicy(
                base_delay=settings.ws_reconnect_base_delay,
                multiplier=settings.ws_reconnect_multiplier,
                max_attempts=settings.ws_max_reconnect_attempts,
                jitter_factor=settings.ws_reconnect_jitter,
            ),
            heartbeat_interval=settings.ws_heartbeat_interval,
        )
        self._state = MachineState()

        self._transport: ChannelTransport | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._heartbeat = ScheduledTask("heartbeat")
        self._reconnect = ScheduledTask("reconnect")
        self._poller = LogPoller(
            http,
            get_offset=self._offset_for,
            on_lines=self._on_polled_lines,
            interval=settings.log_poll_interval,
            limit=settings.log_poll_limit,
        )
        self._unknown_types = UnknownTypeTracker()

        # Metrics
        self._frames_received = 0
        self._frames_sent = 0
        self._decode_failures = 0
        self._connects = 0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state.connection

    @property
    def subscription(self) -> Subscription:
        return self._state.subscription

    @property
    def attempt(self) -> int:
        return self._state.attempt

    @property
    def gave_up(self) -> bool:
        return self._state.gave_up

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat.active

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect.active

    @property
    def polling(self) -> bool:
        return self._poller.active

    # =========================================================================
    # Public API
    # =========================================================================

    async def connect(self) -> None:
        """Open the channel unless it is already OPEN or CONNECTING."""
        await self._feed(ConnectRequested())

    async def close(self) -> None:
        """Intentional shutdown: no reconnect, timers and polling stopped."""
        await self._feed(CloseRequested())
        task = self._connect_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Channel task did not stop in time")
                task.cancel()
            except asyncio.CancelledError:
                pass

    async def send(self, message: dict[str, Any]) -> bool:
        """
        Transmit a frame if the channel is OPEN.

        Returns:
            True if the frame was handed to the transport. Never queues.
        """
        transport = self._transport
        if self._state.connection is not ConnectionState.OPEN or transport is None:
            return False
        try:
            await transport.send(json.dumps(message))
        except Exception as e:
            logger.warning("Channel send failed", type=message.get("type"), error=str(e))
            return False
        self._frames_sent += 1
        return True

    async def request_log_subscription(self, file: str | None, from_offset: int = 0) -> None:
        """
        Select the log file to tail, or None to stop tailing.

        Sent right away when OPEN; otherwise remembered for the next open
        and served by HTTP polling meanwhile.
        """
        if file is not None and file != self._state.subscription.log_file:
            self._collaborator.render_log_lines(file, [], replace=True)
        await self._feed(LogSubscriptionRequested(file, from_offset))

    async def refresh_log_files(self) -> None:
        """Ask for the log file list over the channel, or over HTTP when not OPEN."""
        if await self.send(get_log_files_frame().payload):
            return
        try:
            listing = await self._http.list_log_files()
        except TransportError:
            return
        self._collaborator.render_log_files(listing.files)

    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.connection.value,
            "attempt": self._state.attempt,
            "gave_up": self._state.gave_up,
            "connects": self._connects,
            "frames_received": self._frames_received,
            "frames_sent": self._frames_sent,
            "decode_failures": self._decode_failures,
            "log_file": self._state.subscription.log_file,
            "log_offset": self._state.subscription.offset,
            "polling": self._poller.get_stats(),
            **self._unknown_types.get_metrics(),
        }

    # =========================================================================
    # Event intake and command execution
    # =========================================================================

    async def _feed(self, event: Event) -> None:
        previous = self._state.connection
        self._state, commands = self._machine.transition(self._state, event)
        if self._state.connection is not previous:
            logger.debug(
                "Channel state changed",
                from_state=previous.value,
                to_state=self._state.connection.value,
                event=type(event).__name__,
            )
        for command in commands:
            await self._execute(command)

    async def _execute(self, command: Command) -> None:
        match command:
            case OpenTransport():
                self._connect_task = asyncio.create_task(self._run_transport(), name="channel")
            case CloseTransport(code=code):
                await self._close_transport(code)
            case SendFrame(payload=payload):
                await self.send(payload)
            case StartHeartbeat(interval=interval):
                self._heartbeat.start_interval(interval, self._heartbeat_due)
            case StopHeartbeat():
                self._heartbeat.cancel()
            case ScheduleReconnect(delay=delay, attempt=attempt):
                logger.info("Reconnecting", delay=delay, attempt=attempt)
                self._reconnect.start_once(delay, self._reconnect_due)
            case CancelReconnect():
                self._reconnect.cancel()
            case StartPolling(file=file):
                self._poller.start(file)
            case StopPolling():
                self._poller.stop()
            case ReportStatus(state=state, terminal=terminal):
                self._report_status(state, terminal)
            case _:
                assert_never(command)

    async def _heartbeat_due(self) -> None:
        await self._feed(HeartbeatDue())

    async def _reconnect_due(self) -> None:
        await self._feed(ReconnectDue())

    def _report_status(self, state: ConnectionState, terminal: bool) -> None:
        self._collaborator.connection_status(state, terminal=terminal)
        if state is ConnectionState.OPEN:
            self._collaborator.notify(
                NotificationLevel.SUCCESS, "Real-time Connected", "Live updates enabled"
            )
        elif terminal:
            logger.warning("Max reconnection attempts reached", attempts=self._state.attempt)
            self._collaborator.notify(
                NotificationLevel.WARNING,
                "Connection Lost",
                "Real-time updates unavailable. Reconnects when the server is reachable again.",
            )

    async def _close_transport(self, code: int) -> None:
        transport = self._transport
        if transport is not None:
            try:
                await transport.close(code)
            except Exception as e:
                logger.debug("Channel close failed", error=str(e))
            return
        task = self._connect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # =========================================================================
    # Transport loop
    # =========================================================================

    async def _run_transport(self) -> None:
        try:
            transport = await self._transport_factory(self._url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Channel connect failed", url=self._url, error=str(e) or type(e).__name__)
            await self._feed(TransportFailed(str(e) or type(e).__name__))
            return

        self._transport = transport
        self._connects += 1
        logger.info("Channel open", url=self._url)
        try:
            await self._feed(TransportOpened())
            async for frame in transport.frames():
                self._frames_received += 1
                try:
                    await self._handle_frame(frame)
                except Exception as e:
                    logger.error("Frame handling failed", error=str(e))
        finally:
            if self._transport is transport:
                self._transport = None

        code = transport.close_code or ChannelCloseCode.ABNORMAL
        logger.info("Channel closed", code=code)
        await self._feed(TransportClosed(code))

    async def _handle_frame(self, frame: str | bytes) -> None:
        message = decode(frame)
        if isinstance(message, DecodeError):
            self._decode_failures += 1
            logger.warning("Dropping undecodable frame", stage=message.stage, reason=message.summary)
            logger.debug("Decode attempts", reasons=list(message.reasons))
            return
        await self._dispatch(message)

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(self, message: Message) -> None:
        match message:
            case StatusSnapshot(instances=instances):
                self._collaborator.render_status(instances)
            case DeploymentUpdate():
                self._on_deployment(message)
            case LogTail() | LogContent():
                await self._on_log_lines(message)
            case LogFileList(files=files):
                self._collaborator.render_log_files(files)
            case HeartbeatAck():
                pass
            case ServerNotification(level=level, title=title, message=text):
                self._collaborator.notify(level, title or "Notification", text or "")
            case ServerError(message=text):
                logger.warning("Server reported an error", reason=text)
                self._collaborator.notify(NotificationLevel.ERROR, "Server Error", text)
            case UnknownMessage(type=message_type):
                self._unknown_types.record(message_type)
            case _:
                assert_never(message)

    def _on_deployment(self, update: DeploymentUpdate) -> None:
        progress = DeploymentProgress.from_update(update)
        if progress is None:
            logger.debug("Unknown deployment status", status=update.status)
            return
        self._collaborator.deployment_progress(progress)

        name = update.file_name
        match progress.phase:
            case DeploymentPhase.STARTED:
                self._collaborator.notify(
                    NotificationLevel.INFO, "Deployment Started", f"Deploying {name or 'file'}..."
                )
            case DeploymentPhase.COMPLETED:
                self._collaborator.notify(
                    NotificationLevel.SUCCESS,
                    "Deployment Complete",
                    f"{name or 'File'} deployed successfully",
                )
            case DeploymentPhase.FAILED:
                self._collaborator.notify(
                    NotificationLevel.ERROR, "Deployment Failed", update.message or "Unknown error"
                )
            case _:
                pass

    async def _on_log_lines(self, message: LogTail | LogContent) -> None:
        active = self._state.subscription.log_file
        if active is None or (message.file and message.file != active):
            return
        if message.lines or isinstance(message, LogContent):
            self._collaborator.render_log_lines(
                active,
                message.lines,
                replace=isinstance(message, LogContent),
            )
        if message.last_pos is not None:
            await self._feed(LogOffsetAdvanced(active, message.last_pos))

    # =========================================================================
    # Polling fallback
    # =========================================================================

    def _offset_for(self, file: str) -> int:
        subscription = self._state.subscription
        return subscription.offset if subscription.log_file == file else 0

    async def _on_polled_lines(self, file: str, lines: list[str], last_id: int | None) -> None:
        if file != self._state.subscription.log_file:
            return
        if lines:
            self._collaborator.render_log_lines(file, lines)
        if last_id is not None:
            await self._feed(LogOffsetAdvanced(file, last_id))
