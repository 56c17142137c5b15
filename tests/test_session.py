"""
Tests for ClientSession wiring and lifecycle.
"""

import pytest

from pmon_client.components.connection import ConnectionState
from pmon_client.components.upload import DeploymentPhase, UploadSource
from pmon_client.session import ClientSession
from pmon_client.utils.exceptions import ConfigurationError
from tests.conftest import eventually


@pytest.fixture
def session(settings, collaborator, http, channel):
    return ClientSession(settings, collaborator, http=http, transport_factory=channel)


class TestConstruction:

    def test_invalid_settings_rejected(self, settings):
        bad = settings.model_copy(update={"upload_chunk_size": 0, "base_url": "pmon.test"})

        with pytest.raises(ConfigurationError) as exc_info:
            ClientSession(bad)

        assert "UPLOAD_CHUNK_SIZE must be at least 1 byte" in exc_info.value.problems
        assert "BASE_URL must be an http:// or https:// URL" in exc_info.value.problems

    def test_nothing_runs_before_start(self, session, service, channel):
        assert session.connection_state is ConnectionState.DISCONNECTED
        assert session.upload_progress is None
        assert service.requests == []
        assert channel.urls == []


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_context_manager_connects_and_stops(self, session, service, channel):
        async with session:
            await eventually(lambda: session.connection_state is ConnectionState.OPEN)
            assert service.tokens_issued == ["token-1"]
            assert channel.urls == ["ws://pmon.test/project/ws"]
            assert session.availability.active

        assert session.connection_state is ConnectionState.DISCONNECTED
        assert channel.current.closed_with == 1000
        assert not session.availability.active

    @pytest.mark.asyncio
    async def test_start_without_channel(self, session, service, channel):
        await session.start(connect=False, monitor=False)
        await session.start()

        assert channel.urls == []
        assert service.tokens_issued == ["token-1"]
        await session.stop()

    @pytest.mark.asyncio
    async def test_start_survives_token_outage(self, session, service):
        service.token_status = 503

        await session.start(connect=False, monitor=False)

        assert session.tokens.cached is None
        await session.stop()


class TestRequests:

    @pytest.mark.asyncio
    async def test_upload_from_path(self, session, service, tmp_path):
        path = tmp_path / "project.zip"
        path.write_bytes(b"0123456789")
        await session.start(connect=False, monitor=False)

        assert await session.upload(path, restart=True) is True

        assert service.inits[0]["fileName"] == "project.zip"
        assert len(service.chunks) == 3
        assert session.upload_progress.phase is DeploymentPhase.COMPLETED
        await session.stop()

    @pytest.mark.asyncio
    async def test_whole_upload(self, session, service):
        await session.start(connect=False, monitor=False)

        source = UploadSource.from_bytes("small.zip", b"abc")
        assert await session.upload(source, chunked=False) is True

        assert service.wholes[0]["dateiupload"] == b"abc"
        assert service.inits == []
        await session.stop()

    @pytest.mark.asyncio
    async def test_cancel_without_upload(self, session):
        assert session.cancel_upload() is False

    @pytest.mark.asyncio
    async def test_select_log_file_while_open(self, session, channel):
        async with session:
            await eventually(lambda: session.connection_state is ConnectionState.OPEN)
            await session.select_log_file("WCCOActrl.log")

            subscribe = {"type": "subscribeLog", "file": "WCCOActrl.log", "startPos": 0}
            await eventually(lambda: subscribe in channel.current.sent)

    @pytest.mark.asyncio
    async def test_stats(self, session):
        await session.start(connect=False, monitor=False)
        await session.upload(UploadSource.from_bytes("p.zip", b"abcd"))

        stats = session.stats()

        assert stats["session_id"] == session.session_id
        assert stats["connection"]["state"] == "disconnected"
        assert stats["upload_busy"] is False
        assert stats["last_upload_outcome"] == "completed"
        await session.stop()
