"""
Client session: the one object that owns every component.

There is no module-level state. A ClientSession builds the HTTP client,
token manager, connection manager, upload pipeline, command service and
availability monitor once, wires them to one collaborator and tears them
down together.

Usage:
    async with ClientSession(settings, collaborator) as session:
        await session.select_log_file("WCCOActrl.log")
        await session.upload("project.zip", restart=True)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

from pmon_client.collaborators import Collaborator, NullCollaborator
from pmon_client.components.commands import ProjectCommandService
from pmon_client.components.connection import (
    AvailabilityMonitor,
    ConnectionManager,
    ConnectionState,
    TransportFactory,
)
from pmon_client.components.security import TokenManager
from pmon_client.components.upload import DeploymentProgress, UploadPipeline, UploadSource
from pmon_client.config.logging import get_logger
from pmon_client.config.settings import ClientSettings
from pmon_client.infrastructure.correlation import bind_session_id, new_session_id
from pmon_client.infrastructure.http import ServiceHttpClient
from pmon_client.utils.exceptions import ConfigurationError, TokenUnavailableError

logger = get_logger(__name__)


class ClientSession:
    """
    Session layer of one management console.

    Exposes the connection state and upload progress to the presentation
    layer and accepts its requests (connect, select a log file, upload,
    cancel, project commands).
    """

    def __init__(
        self,
        settings: ClientSettings,
        collaborator: Collaborator | None = None,
        *,
        http: ServiceHttpClient | None = None,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """
        Build every component. Nothing touches the network until start().

        Args:
            settings: Client settings.
            collaborator: Presentation surface (ignores everything by default).
            http: HTTP client to use instead of building one; the caller closes it.
            transport_factory: Channel opener, for tests or alternative transports.

        Raises:
            ConfigurationError: The settings are unusable.
        """
        problems = settings.validate_runtime()
        if problems:
            raise ConfigurationError(problems)

        self.settings = settings
        self.session_id = new_session_id()
        self._collaborator: Collaborator = collaborator or NullCollaborator()
        self._owns_http = http is None
        self.http = http or ServiceHttpClient(settings)

        self.tokens = TokenManager(self.http, refresh_margin=settings.token_refresh_margin)
        self.connection = ConnectionManager(
            settings,
            self.http,
            self._collaborator,
            transport_factory=transport_factory,
        )
        self.uploads = UploadPipeline(settings, self.http, self.tokens, self._collaborator)
        self.commands = ProjectCommandService(self.http, self.tokens, self._collaborator)
        self.availability = AvailabilityMonitor(
            probe=self.http.probe,
            on_recovered=self.connection.connect,
            on_change=self._collaborator.server_availability,
            interval=settings.availability_check_interval,
        )
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, *, connect: bool = True, monitor: bool = True) -> None:
        """
        Start the session.

        Args:
            connect: Open the real-time channel.
            monitor: Start probing server availability.
        """
        if self._started:
            return
        self._started = True
        bind_session_id(self.session_id)
        logger.info("Client session starting", base_url=self.settings.base_url)

        try:
            await self.tokens.acquire()
        except TokenUnavailableError:
            logger.warning("No initial token, fetching on first use")

        if connect:
            await self.connection.connect()
        if monitor:
            self.availability.start()

    async def stop(self) -> None:
        """Close the channel intentionally and release every resource."""
        self.availability.stop()
        self.uploads.cancel()
        await self.connection.close()
        if self._owns_http:
            await self.http.aclose()
        self._started = False
        logger.info("Client session stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # =========================================================================
    # Exposed state
    # =========================================================================

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    @property
    def upload_progress(self) -> DeploymentProgress | None:
        return self.uploads.progress

    # =========================================================================
    # Requests
    # =========================================================================

    async def connect(self) -> None:
        await self.connection.connect()

    async def select_log_file(self, file: str | None, offset: int = 0) -> None:
        await self.connection.request_log_subscription(file, offset)

    async def upload(
        self,
        source: UploadSource | str | Path,
        restart: bool = False,
        chunked: bool = True,
    ) -> bool:
        """
        Deliver a deployment artifact.

        Args:
            source: Artifact, or a path to one.
            restart: Restart the project after deployment.
            chunked: Use the chunked protocol; False sends one streamed request.

        Returns:
            True when the service accepted the artifact.
        """
        if not isinstance(source, UploadSource):
            source = UploadSource.from_path(source)
        if chunked:
            return await self.uploads.upload_chunked(source, restart)
        return await self.uploads.upload_whole(source, restart)

    def cancel_upload(self) -> bool:
        return self.uploads.cancel()

    def stats(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "connection": self.connection.stats(),
            "token": self.tokens.get_stats(),
            "upload_busy": self.uploads.busy,
            "last_upload_outcome": (
                self.uploads.last_outcome.value if self.uploads.last_outcome else None
            ),
            "server_available": self.availability.available,
        }
