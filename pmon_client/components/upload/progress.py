"""
Deployment progress: the one surface both the uploader and the channel report to.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pmon_client.components.codec.messages import DeploymentUpdate


class DeploymentPhase(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class DeploymentProgress:
    """
    Snapshot of a deployment, transport-agnostic.

    Attributes:
        phase: Lifecycle phase.
        percent: 0-100, or None when unknown.
        message: Short human-readable status.
        file_name: Artifact being deployed, when known.
    """

    phase: DeploymentPhase
    percent: float | None = None
    message: str | None = None
    file_name: str | None = None

    @classmethod
    def from_update(cls, update: DeploymentUpdate) -> DeploymentProgress | None:
        """Map a channel deployment message; None for statuses this client does not know."""
        try:
            phase = DeploymentPhase(update.status)
        except ValueError:
            return None
        percent = update.progress
        if phase is DeploymentPhase.COMPLETED and percent is None:
            percent = 100.0
        return cls(phase, percent, update.message, update.file_name)
