"""
HTTP surface of the PMON service.

Thin async wrapper over one httpx.AsyncClient. It owns request stamping
(X-Request-ID), status translation and response parsing; it holds no session
state and never retries. Retry and token policy belong to the callers.
"""

from __future__ import annotations

from typing import IO, Any, Callable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from pmon_client.config.constants import TOKEN_FIELD, Endpoints
from pmon_client.config.logging import get_logger
from pmon_client.config.settings import ClientSettings
from pmon_client.infrastructure.correlation import HEADER_NAME, get_session_id
from pmon_client.schemas import (
    CommandReply,
    DeploymentHistory,
    LogFileListing,
    LogReadResult,
    TokenGrant,
)
from pmon_client.utils.exceptions import (
    ForbiddenError,
    ServiceStatusError,
    TransportError,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ProgressCallback = Callable[[int, int], None]


class ProgressReader:
    """
    File-like wrapper that reports how many bytes the transport has pulled.

    httpx streams multipart file fields by calling read() repeatedly, so the
    byte count tracks what has actually been handed to the socket.
    """

    def __init__(self, stream: IO[bytes], total: int, on_progress: ProgressCallback):
        self._stream = stream
        self._total = total
        self._on_progress = on_progress
        self._sent = 0

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        if chunk:
            self._sent += len(chunk)
            self._on_progress(self._sent, self._total)
        return chunk

    def seek(self, offset: int, whence: int = 0) -> int:
        if offset == 0 and whence == 0:
            self._sent = 0
        return self._stream.seek(offset, whence)

    def tell(self) -> int:
        return self._stream.tell()


class ServiceHttpClient:
    """
    Async client for every HTTP endpoint the session consumes.

    Usage:
        http = ServiceHttpClient(settings)
        grant = await http.fetch_token()
        await http.aclose()
    """

    def __init__(
        self,
        settings: ClientSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Client settings (base URL, timeout, TLS).
            transport: Optional httpx transport, used by tests to mock the service.
        """
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.http_timeout,
            verify=settings.verify_tls,
            transport=transport,
            event_hooks={"request": [self._stamp_request]},
        )

    @staticmethod
    async def _stamp_request(request: httpx.Request) -> None:
        session_id = get_session_id()
        if session_id:
            request.headers[HEADER_NAME] = session_id

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    # ==========================================================================
    # Plumbing
    # ==========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path}", str(exc) or type(exc).__name__) from exc

    @staticmethod
    def _check(response: httpx.Response) -> httpx.Response:
        operation = f"{response.request.method} {response.request.url.path}"
        if response.status_code == 403:
            raise ForbiddenError(operation)
        if not response.is_success:
            raise ServiceStatusError(operation, response.status_code)
        return response

    @staticmethod
    def _parse(model: type[ModelT], response: httpx.Response) -> ModelT:
        operation = f"{response.request.method} {response.request.url.path}"
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(operation, f"malformed response: {exc}") from exc

    # ==========================================================================
    # Token
    # ==========================================================================

    async def fetch_token(self) -> TokenGrant:
        """Fetch a fresh anti-forgery token and its lifetime in seconds."""
        response = self._check(await self._request("GET", Endpoints.TOKEN))
        return self._parse(TokenGrant, response)

    # ==========================================================================
    # Uploads (status codes are returned, not raised, except on 403)
    # ==========================================================================

    async def init_upload(
        self,
        upload_id: str,
        file_name: str,
        file_size: int,
        chunk_size: int,
        total_chunks: int,
        restart: bool,
        token: str,
    ) -> int:
        """Open an upload session on the service. Returns the HTTP status."""
        response = await self._request(
            "POST",
            Endpoints.UPLOAD_INIT,
            json={
                "uploadId": upload_id,
                "fileName": file_name,
                "fileSize": file_size,
                "chunkSize": chunk_size,
                "totalChunks": total_chunks,
                "restartProject": restart,
                TOKEN_FIELD: token,
            },
        )
        return response.status_code

    async def upload_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        token: str,
    ) -> int:
        """Send one chunk as multipart form data. Returns the HTTP status."""
        response = await self._request(
            "POST",
            Endpoints.UPLOAD_CHUNK,
            data={
                "uploadId": upload_id,
                "chunkIndex": str(chunk_index),
                "totalChunks": str(total_chunks),
                TOKEN_FIELD: token,
            },
            files={"chunk": ("blob", data, "application/octet-stream")},
        )
        return response.status_code

    async def finalize_upload(self, upload_id: str, token: str) -> int:
        """Ask the service to assemble and deploy the uploaded chunks."""
        response = await self._request(
            "POST",
            Endpoints.UPLOAD_FINALIZE,
            json={"uploadId": upload_id, TOKEN_FIELD: token},
        )
        return response.status_code

    async def upload_whole(
        self,
        file_name: str,
        stream: IO[bytes],
        size: int,
        restart: bool,
        token: str,
        on_progress: ProgressCallback,
    ) -> int:
        """Send the whole artifact in one streamed request. Returns the HTTP status."""
        reader = ProgressReader(stream, size, on_progress)
        response = await self._request(
            "POST",
            Endpoints.UPLOAD_WHOLE,
            data={
                "restartProject": "true" if restart else "false",
                TOKEN_FIELD: token,
            },
            files={"dateiupload": (file_name, reader, "application/octet-stream")},
        )
        return response.status_code

    # ==========================================================================
    # Logs and history (read-only)
    # ==========================================================================

    async def list_log_files(self) -> LogFileListing:
        response = self._check(await self._request("GET", Endpoints.LOG_FILES))
        return self._parse(LogFileListing, response)

    async def read_log(self, file: str, since: int, limit: int) -> LogReadResult:
        """Read lines of a log file after the given offset."""
        response = self._check(
            await self._request(
                "GET",
                Endpoints.LOG_READ,
                params={"file": file, "since": since, "limit": limit},
                headers={"Accept": "application/json"},
            )
        )
        return self._parse(LogReadResult, response)

    async def deployment_history(self) -> DeploymentHistory:
        response = self._check(await self._request("GET", Endpoints.HISTORY))
        return self._parse(DeploymentHistory, response)

    # ==========================================================================
    # Project commands
    # ==========================================================================

    async def manager_command(
        self,
        action: str,
        shm_id: int,
        hostname: str,
        token: str,
    ) -> CommandReply:
        """Start, stop or restart one manager on one instance."""
        response = self._check(
            await self._request(
                "POST",
                Endpoints.MANAGER,
                json={
                    "action": action,
                    "shmId": shm_id,
                    "hostname": hostname,
                    TOKEN_FIELD: token,
                },
            )
        )
        return self._parse(CommandReply, response)

    async def restart_instance(self, hostname: str, token: str) -> None:
        """Restart every manager of one instance."""
        self._check(
            await self._request(
                "POST",
                Endpoints.RESTART,
                json={"restart": True, "hostname": hostname, TOKEN_FIELD: token},
            )
        )

    # ==========================================================================
    # Availability
    # ==========================================================================

    async def probe(self) -> bool:
        """HEAD the service root. Never raises."""
        try:
            response = await self._client.head(Endpoints.PROBE)
        except httpx.HTTPError as exc:
            logger.debug("Availability probe failed", reason=str(exc) or type(exc).__name__)
            return False
        return response.is_success
