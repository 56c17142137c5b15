"""
Interfaces between the session core and whatever presents it.

The core never decides what to render. It hands typed data to a
Collaborator; a console UI, the CLI or a test double implements it.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from pmon_client.components.connection.state import ConnectionState
from pmon_client.components.upload.progress import DeploymentProgress
from pmon_client.config.constants import NotificationLevel
from pmon_client.schemas import LogFileInfo


class Collaborator(Protocol):
    """Presentation surface consumed by the session core."""

    def render_status(self, instances: Sequence[Mapping[str, Any]]) -> None:
        """Replace the displayed process status of every instance."""
        ...

    def render_log_lines(self, file: str, lines: Sequence[str], *, replace: bool = False) -> None:
        """Append lines of a log file, or replace the view when replace is true."""
        ...

    def render_log_files(self, files: Sequence[LogFileInfo]) -> None: ...

    def notify(self, level: NotificationLevel, title: str, message: str) -> None:
        """Show a user-visible notice."""
        ...

    def connection_status(self, state: ConnectionState, *, terminal: bool = False) -> None:
        """Channel state changed; terminal means no further reconnects will happen."""
        ...

    def deployment_progress(self, progress: DeploymentProgress) -> None: ...

    def server_availability(self, available: bool) -> None: ...


class NullCollaborator:
    """Collaborator that ignores everything. Subclass and override what you need."""

    def render_status(self, instances: Sequence[Mapping[str, Any]]) -> None:
        pass

    def render_log_lines(self, file: str, lines: Sequence[str], *, replace: bool = False) -> None:
        pass

    def render_log_files(self, files: Sequence[LogFileInfo]) -> None:
        pass

    def notify(self, level: NotificationLevel, title: str, message: str) -> None:
        pass

    def connection_status(self, state: ConnectionState, *, terminal: bool = False) -> None:
        pass

    def deployment_progress(self, progress: DeploymentProgress) -> None:
        pass

    def server_availability(self, available: bool) -> None:
        pass
