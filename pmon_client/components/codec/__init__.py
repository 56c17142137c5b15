"""
Message codec: frame decoding, the compression/encoding cascade, typed messages.
"""

from pmon_client.components.codec.cascade import (
    Attempt,
    CascadeResult,
    detect_format,
    format_order,
    recover_json,
)
from pmon_client.components.codec.envelope import DecodeError, MessageEnvelope, decode
from pmon_client.components.codec.messages import (
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
    message_from_payload,
)
from pmon_client.components.codec.tracker import UnknownTypeTracker

__all__ = [
    # cascade
    "Attempt",
    "CascadeResult",
    "detect_format",
    "format_order",
    "recover_json",
    # envelope
    "DecodeError",
    "MessageEnvelope",
    "decode",
    # messages
    "DeploymentUpdate",
    "HeartbeatAck",
    "LogContent",
    "LogFileList",
    "LogTail",
    "Message",
    "ServerError",
    "ServerNotification",
    "StatusSnapshot",
    "UnknownMessage",
    "message_from_payload",
    # tracker
    "UnknownTypeTracker",
]
