"""
Session core components.

Modules:
    codec: Frame decoding and the decompression/encoding cascade.
    connection: Real-time channel lifecycle, state machine, fallbacks.
    resilience: Reconnect and retry schedules.
    security: Anti-forgery token lifecycle.
    upload: Chunked and whole-file artifact delivery.
    commands: Manager and instance control.
"""

from pmon_client.components.codec import DecodeError, Message, decode
from pmon_client.components.commands import CommandResult, ProjectCommandService
from pmon_client.components.connection import (
    AvailabilityMonitor,
    ConnectionManager,
    ConnectionState,
    Subscription,
)
from pmon_client.components.resilience import ReconnectPolicy
from pmon_client.components.security import TokenManager
from pmon_client.components.upload import (
    DeploymentPhase,
    DeploymentProgress,
    UploadOutcome,
    UploadPipeline,
    UploadSource,
)

__all__ = [
    # codec
    "DecodeError",
    "Message",
    "decode",
    # commands
    "CommandResult",
    "ProjectCommandService",
    # connection
    "AvailabilityMonitor",
    "ConnectionManager",
    "ConnectionState",
    "Subscription",
    # resilience
    "ReconnectPolicy",
    # security
    "TokenManager",
    # upload
    "DeploymentPhase",
    "DeploymentProgress",
    "UploadOutcome",
    "UploadPipeline",
    "UploadSource",
]
