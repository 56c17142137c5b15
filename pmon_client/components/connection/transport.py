"""
Channel transport abstraction and its websockets implementation.
"""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable, Protocol, Self

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from pmon_client.config.constants import ChannelCloseCode
from pmon_client.config.logging import get_logger
from pmon_client.infrastructure.correlation import HEADER_NAME, get_session_id

logger = get_logger(__name__)


class ChannelTransport(Protocol):
    """One open bidirectional channel. Implementations must not reconnect."""

    @property
    def close_code(self) -> int | None:
        """Close code once the channel has ended, else None."""
        ...

    async def send(self, payload: str) -> None: ...

    async def close(self, code: int = ChannelCloseCode.NORMAL, reason: str = "") -> None: ...

    def frames(self) -> AsyncIterator[str | bytes]:
        """Inbound frames in transmission order; ends when the channel closes."""
        ...


TransportFactory = Callable[[str], Awaitable[ChannelTransport]]


class WebSocketTransport:
    """
    ChannelTransport over a websockets client connection.

    Protocol-level pings are disabled: liveness is the application heartbeat
    frame, which the service expects.
    """

    def __init__(self, connection: ClientConnection):
        self._connection = connection

    @classmethod
    async def open(cls, url: str, open_timeout: float = 10.0) -> Self:
        """
        Open a channel to url.

        Raises:
            OSError, websockets.exceptions.InvalidHandshake, TimeoutError: connect failed.
        """
        headers = {}
        session_id = get_session_id()
        if session_id:
            headers[HEADER_NAME] = session_id
        connection = await connect(
            url,
            open_timeout=open_timeout,
            ping_interval=None,
            close_timeout=5,
            additional_headers=headers,
        )
        return cls(connection)

    @property
    def close_code(self) -> int | None:
        # websockets reports 1006 itself when no close frame was received
        return self._connection.close_code

    async def send(self, payload: str) -> None:
        await self._connection.send(payload)

    async def close(self, code: int = ChannelCloseCode.NORMAL, reason: str = "") -> None:
        await self._connection.close(code, reason)

    async def frames(self) -> AsyncIterator[str | bytes]:
        try:
            async for message in self._connection:
                yield message
        except ConnectionClosed as e:
            logger.debug("Channel closed", code=e.rcvd.code if e.rcvd else None)


def websocket_factory(open_timeout: float) -> TransportFactory:
    """Transport factory bound to a handshake timeout."""

    async def factory(url: str) -> ChannelTransport:
        return await WebSocketTransport.open(url, open_timeout)

    return factory
