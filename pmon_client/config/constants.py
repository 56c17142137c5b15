"""
Protocol constants for the PMON real-time channel and HTTP surface.

Centralized so the codec, the state machine and the HTTP client agree on
wire names. Tunable timings live in settings; values here are fixed by the
service protocol.
"""

from enum import Enum, IntEnum
from typing import Final

__all__ = [
    "ChannelCloseCode",
    "InboundType",
    "OutboundType",
    "SUBSCRIBED_CHANNELS",
    "ManagerAction",
    "NotificationLevel",
    "Endpoints",
    "TOKEN_FIELD",
]


class ChannelCloseCode(IntEnum):
    """
    WebSocket close codes relevant to the client.

    Only NORMAL is treated as an intentional close; every other code,
    including ones not listed here, schedules a reconnect.
    """

    NORMAL = 1000  # Intentional shutdown by either side
    GOING_AWAY = 1001  # Server restarting or proxy shutting down
    PROTOCOL_ERROR = 1002
    ABNORMAL = 1006  # No close frame received (network drop)
    SERVER_ERROR = 1011


class InboundType(str, Enum):
    """Message types pushed by the service."""

    PMON = "pmon"
    DEPLOYMENT = "deployment"
    LOG = "log"
    LOG_CONTENT = "logContent"
    LOG_FILES = "logFiles"
    HEARTBEAT = "heartbeat"
    NOTIFICATION = "notification"
    ERROR = "error"


class OutboundType(str, Enum):
    """Control messages sent by the client."""

    SUBSCRIBE = "subscribe"
    SUBSCRIBE_LOG = "subscribeLog"
    UNSUBSCRIBE_LOG = "unsubscribeLog"
    GET_LOG_FILES = "getLogFiles"
    HEARTBEAT = "heartbeat"


# Fixed channel set re-issued on every successful open
SUBSCRIBED_CHANNELS: Final[tuple[str, ...]] = ("pmon", "deployment", "logs")


class ManagerAction(str, Enum):
    """Manager control actions accepted by /project/manager."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"


class NotificationLevel(str, Enum):
    """Severity of a user-visible notice."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def parse(cls, value: object) -> "NotificationLevel":
        """Map a server-provided level onto a known one, defaulting to INFO."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.INFO


class Endpoints:
    """HTTP paths of the service, relative to base_url."""

    TOKEN: Final[str] = "/project/csrftoken"
    UPLOAD_INIT: Final[str] = "/project/upload/init"
    UPLOAD_CHUNK: Final[str] = "/project/upload/chunk"
    UPLOAD_FINALIZE: Final[str] = "/project/upload/finalize"
    UPLOAD_WHOLE: Final[str] = "/project/download"
    LOG_FILES: Final[str] = "/logs/files"
    LOG_READ: Final[str] = "/logs/read"
    HISTORY: Final[str] = "/project/history"
    MANAGER: Final[str] = "/project/manager"
    RESTART: Final[str] = "/project/restart"
    PROBE: Final[str] = "/"


# Form/JSON field carrying the anti-forgery token on state-changing requests
TOKEN_FIELD: Final[str] = "csrfToken"
