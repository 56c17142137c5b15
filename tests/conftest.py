"""
Pytest configuration and fixtures for pmon-client tests.

Nothing here touches the network: the HTTP surface is served by an
httpx.MockTransport in front of FakeService, and the real-time channel by
in-memory FakeTransport instances handed out by FakeChannelFactory.
"""

import asyncio
import itertools
import json
import re
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from pmon_client.collaborators import NullCollaborator
from pmon_client.components.connection import ConnectionManager, ConnectionState
from pmon_client.components.security import TokenManager
from pmon_client.components.upload import DeploymentProgress
from pmon_client.config.constants import ChannelCloseCode, NotificationLevel
from pmon_client.config.settings import ClientSettings
from pmon_client.infrastructure.http import ServiceHttpClient


# =============================================================================
# Helpers
# =============================================================================


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds, failing after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.001)


def form_fields(request: httpx.Request) -> dict[str, bytes]:
    """Split a multipart request body into {field name: raw value}."""
    boundary = request.headers["content-type"].split("boundary=")[1].encode()
    fields = {}
    for part in request.content.split(b"--" + boundary):
        head, sep, body = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        match = re.search(rb'name="([^"]+)"', head)
        if match:
            fields[match.group(1).decode()] = body[:-2]
    return fields


# =============================================================================
# Presentation double
# =============================================================================


class RecordingCollaborator(NullCollaborator):
    """Remembers every call the session core makes."""

    def __init__(self) -> None:
        self.statuses: list[list[Any]] = []
        self.log_lines: list[tuple[str, list[str], bool]] = []
        self.log_files: list[list[Any]] = []
        self.notices: list[tuple[NotificationLevel, str, str]] = []
        self.states: list[tuple[ConnectionState, bool]] = []
        self.progress: list[DeploymentProgress] = []
        self.availability: list[bool] = []

    def render_status(self, instances):
        self.statuses.append(list(instances))

    def render_log_lines(self, file, lines, *, replace=False):
        self.log_lines.append((file, list(lines), replace))

    def render_log_files(self, files):
        self.log_files.append(list(files))

    def notify(self, level, title, message):
        self.notices.append((level, title, message))

    def connection_status(self, state, *, terminal=False):
        self.states.append((state, terminal))

    def deployment_progress(self, progress):
        self.progress.append(progress)

    def server_availability(self, available):
        self.availability.append(available)

    def titles(self) -> list[str]:
        return [title for _, title, _ in self.notices]


# =============================================================================
# Channel doubles
# =============================================================================


class FakeTransport:
    """In-memory ChannelTransport. The test plays the server."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed_with: int | None = None
        self._inbox: asyncio.Queue[str | bytes | None] = asyncio.Queue()
        self._close_code: int | None = None

    @property
    def close_code(self) -> int | None:
        return self._close_code

    async def send(self, payload: str) -> None:
        if self._close_code is not None:
            raise ConnectionError("channel closed")
        self.sent.append(json.loads(payload))

    async def close(self, code: int = ChannelCloseCode.NORMAL, reason: str = "") -> None:
        self.closed_with = code
        self.server_close(code)

    async def frames(self):
        while True:
            frame = await self._inbox.get()
            if frame is None:
                return
            yield frame

    def push(self, frame: dict[str, Any] | str | bytes) -> None:
        """Deliver a frame to the client."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def server_close(self, code: int = ChannelCloseCode.ABNORMAL) -> None:
        """End the channel from the server side."""
        if self._close_code is None:
            self._close_code = code
            self._inbox.put_nowait(None)

    def sent_types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]


class FakeChannelFactory:
    """TransportFactory handing out FakeTransports; can be told to refuse connects."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.urls: list[str] = []
        self.refuse = 0

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.refuse:
            self.refuse -= 1
            raise ConnectionRefusedError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


# =============================================================================
# Service double
# =============================================================================


class FakeService:
    """
    Scriptable PMON HTTP service behind httpx.MockTransport.

    Attributes tune the answers; the lists record what the client sent.
    """

    def __init__(self) -> None:
        self._token_ids = itertools.count(1)
        self.token_expires_in = 300.0
        self.token_status = 200
        self.init_status = 200
        self.finalize_status = 200
        self.whole_status = 200
        self.chunk_failures: dict[int, int] = {}
        self.chunk_status_on_failure = 500
        self.block_chunk: int | None = None
        self.chunk_blocked = asyncio.Event()
        self.manager_reply: dict[str, Any] = {"success": True, "message": "Manager restarted"}
        self.manager_status = 200
        self.restart_status: dict[str, int] = {}
        self.log_lines = ["polled line"]
        self.log_last_id = 150
        self.available = True

        self.tokens_issued: list[str] = []
        self.requests: list[tuple[str, str]] = []
        self.inits: list[dict[str, Any]] = []
        self.chunks: list[dict[str, bytes]] = []
        self.finalizes: list[dict[str, Any]] = []
        self.wholes: list[dict[str, bytes]] = []
        self.log_reads: list[dict[str, str]] = []
        self.commands: list[dict[str, Any]] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        path = request.url.path
        self.requests.append((request.method, path))

        match request.method, path:
            case "HEAD", "/":
                return httpx.Response(200 if self.available else 503)
            case "GET", "/project/csrftoken":
                if self.token_status != 200:
                    return httpx.Response(self.token_status)
                token = f"token-{next(self._token_ids)}"
                self.tokens_issued.append(token)
                return httpx.Response(
                    200, json={"csrfToken": token, "expiresIn": self.token_expires_in}
                )
            case "POST", "/project/upload/init":
                self.inits.append(json.loads(request.content))
                return httpx.Response(self.init_status, json={})
            case "POST", "/project/upload/chunk":
                return await self._chunk(request)
            case "POST", "/project/upload/finalize":
                self.finalizes.append(json.loads(request.content))
                return httpx.Response(self.finalize_status, json={})
            case "POST", "/project/download":
                self.wholes.append(form_fields(request))
                return httpx.Response(self.whole_status)
            case "GET", "/logs/files":
                return httpx.Response(
                    200, json={"files": [{"name": "WCCOActrl.log", "size": 12.5}]}
                )
            case "GET", "/logs/read":
                self.log_reads.append(dict(request.url.params))
                return httpx.Response(
                    200, json={"lines": self.log_lines, "lastId": self.log_last_id}
                )
            case "GET", "/project/history":
                return httpx.Response(
                    200,
                    json={
                        "history": [
                            {"fileName": "p.zip", "fileSize": 2048, "status": 0, "user": "ops"},
                            {"fileName": "q.zip", "status": 3, "statusMessage": "unzip failed"},
                        ],
                        "totalCount": 2,
                    },
                )
            case "POST", "/project/manager":
                self.commands.append(json.loads(request.content))
                return httpx.Response(self.manager_status, json=self.manager_reply)
            case "POST", "/project/restart":
                body = json.loads(request.content)
                self.commands.append(body)
                return httpx.Response(self.restart_status.get(body["hostname"], 200), json={})
        return httpx.Response(404)

    async def _chunk(self, request: httpx.Request) -> httpx.Response:
        fields = form_fields(request)
        self.chunks.append(fields)
        index = int(fields["chunkIndex"])
        if index == self.block_chunk:
            self.chunk_blocked.set()
            await asyncio.Event().wait()
        remaining = self.chunk_failures.get(index, 0)
        if remaining:
            self.chunk_failures[index] = remaining - 1
            return httpx.Response(self.chunk_status_on_failure)
        return httpx.Response(200, json={})

    def chunk_indices(self) -> list[int]:
        return [int(fields["chunkIndex"]) for fields in self.chunks]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def settings():
    """Settings with short timings so timer-driven tests finish quickly."""
    return ClientSettings(
        base_url="http://pmon.test",
        ws_heartbeat_interval=30.0,
        ws_reconnect_base_delay=0.01,
        ws_reconnect_multiplier=2.0,
        ws_max_reconnect_attempts=5,
        log_poll_interval=30.0,
        availability_check_interval=30.0,
        upload_chunk_size=4,
        upload_max_concurrent_chunks=3,
        upload_chunk_retries=3,
        upload_retry_delay=0.0,
    )


@pytest.fixture
def collaborator():
    return RecordingCollaborator()


@pytest.fixture
def service():
    return FakeService()


@pytest_asyncio.fixture
async def http(settings, service):
    client = ServiceHttpClient(settings, transport=service.transport())
    yield client
    await client.aclose()


@pytest.fixture
def tokens(http):
    return TokenManager(http, refresh_margin=60.0)


@pytest.fixture
def channel():
    return FakeChannelFactory()


@pytest_asyncio.fixture
async def manager(settings, http, collaborator, channel):
    connection = ConnectionManager(settings, http, collaborator, transport_factory=channel)
    yield connection
    await connection.close()
