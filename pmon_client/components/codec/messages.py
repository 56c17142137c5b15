"""
Typed inbound messages.

A closed union of frozen value objects, one per known inbound type, plus an
explicit UnknownMessage for forward compatibility. Construction is lenient
about missing or mistyped optional fields: the service is the source of
truth and a partially filled message is still worth rendering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Union

from pydantic import ValidationError

from pmon_client.config.constants import InboundType, NotificationLevel
from pmon_client.schemas import LogFileInfo


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _lines(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(line) for line in value)


# =============================================================================
# Message kinds
# =============================================================================


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    """Full process status of every project instance (type "pmon")."""

    instances: tuple[Mapping[str, Any], ...] = ()

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> StatusSnapshot:
        raw = data.get("instances")
        items = raw if isinstance(raw, list) else []
        return cls(tuple(MappingProxyType(dict(i)) for i in items if isinstance(i, dict)))


@dataclass(frozen=True, slots=True)
class DeploymentUpdate:
    """
    Deployment lifecycle event (type "deployment").

    Attributes:
        status: started, progress, completed or failed (other values kept verbatim).
        file_name: Artifact name, when the service reports it.
        message: Human-readable detail.
        progress: Percent complete for "progress" events.
    """

    status: str
    file_name: str | None = None
    message: str | None = None
    progress: float | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> DeploymentUpdate:
        details = data.get("details")
        if not isinstance(details, dict):
            details = {}
        progress = details.get("progress")
        return cls(
            status=str(data.get("status") or ""),
            file_name=_text(details.get("fileName")),
            message=_text(details.get("message")),
            progress=float(progress) if isinstance(progress, (int, float)) else None,
        )


@dataclass(frozen=True, slots=True)
class LogTail:
    """New lines appended to a log file (type "log")."""

    file: str | None
    lines: tuple[str, ...] = ()
    last_pos: int | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> LogTail:
        return cls(_text(data.get("file")), _lines(data.get("lines")), _int(data.get("lastPos")))


@dataclass(frozen=True, slots=True)
class LogContent:
    """Initial content of a freshly subscribed log file (type "logContent")."""

    file: str | None
    lines: tuple[str, ...] = ()
    last_pos: int | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> LogContent:
        return cls(_text(data.get("file")), _lines(data.get("lines")), _int(data.get("lastPos")))


@dataclass(frozen=True, slots=True)
class LogFileList:
    """Available log files (type "logFiles")."""

    files: tuple[LogFileInfo, ...] = ()

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> LogFileList:
        raw = data.get("files")
        items = raw if isinstance(raw, list) else []
        files = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                files.append(LogFileInfo.model_validate(item))
            except ValidationError:
                continue
        return cls(tuple(files))


@dataclass(frozen=True, slots=True)
class HeartbeatAck:
    """Server answer to a liveness frame."""


@dataclass(frozen=True, slots=True)
class ServerNotification:
    """Notice the service wants shown to the operator, forwarded verbatim."""

    level: NotificationLevel
    title: str | None
    message: str | None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> ServerNotification:
        return cls(
            level=NotificationLevel.parse(data.get("level") or "info"),
            title=_text(data.get("title")),
            message=_text(data.get("message")),
        )


@dataclass(frozen=True, slots=True)
class ServerError:
    """Error reported by the service. Never fatal to the channel."""

    message: str

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> ServerError:
        return cls(_text(data.get("message")) or "Unknown error")


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    """A well-formed frame of a type this client does not know."""

    type: str | None
    payload: Mapping[str, Any] = field(default_factory=dict, repr=False)


Message = Union[
    StatusSnapshot,
    DeploymentUpdate,
    LogTail,
    LogContent,
    LogFileList,
    HeartbeatAck,
    ServerNotification,
    ServerError,
    UnknownMessage,
]


def message_from_payload(data: Mapping[str, Any]) -> Message:
    """
    Build the typed message for a decoded JSON object.

    Args:
        data: The (decompressed) JSON object of one frame.

    Returns:
        The matching message kind, or UnknownMessage.
    """
    raw_type = data.get("type")
    try:
        kind = InboundType(raw_type)
    except ValueError:
        return UnknownMessage(_text(raw_type), MappingProxyType(dict(data)))

    match kind:
        case InboundType.PMON:
            return StatusSnapshot.from_payload(data)
        case InboundType.DEPLOYMENT:
            return DeploymentUpdate.from_payload(data)
        case InboundType.LOG:
            return LogTail.from_payload(data)
        case InboundType.LOG_CONTENT:
            return LogContent.from_payload(data)
        case InboundType.LOG_FILES:
            return LogFileList.from_payload(data)
        case InboundType.HEARTBEAT:
            return HeartbeatAck()
        case InboundType.NOTIFICATION:
            return ServerNotification.from_payload(data)
        case InboundType.ERROR:
            return ServerError.from_payload(data)
