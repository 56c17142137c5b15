"""
Tests for the HTTP surface client.
"""

import io

import httpx
import pytest

from pmon_client.infrastructure.correlation import HEADER_NAME, bind_session_id
from pmon_client.infrastructure.http import ProgressReader, ServiceHttpClient
from pmon_client.utils.exceptions import ForbiddenError, ServiceStatusError, TransportError
from tests.conftest import form_fields


def client_for(settings, handler):
    return ServiceHttpClient(settings, transport=httpx.MockTransport(handler))


class TestStatusTranslation:

    @pytest.mark.asyncio
    async def test_403_is_forbidden(self, settings):
        http = client_for(settings, lambda request: httpx.Response(403))
        with pytest.raises(ForbiddenError) as exc_info:
            await http.manager_command("start", 1, "scada-01", "t")
        assert exc_info.value.status_code == 403
        await http.aclose()

    @pytest.mark.asyncio
    async def test_other_errors_carry_status(self, settings):
        http = client_for(settings, lambda request: httpx.Response(502))
        with pytest.raises(ServiceStatusError) as exc_info:
            await http.list_log_files()
        assert exc_info.value.status_code == 502
        assert exc_info.value.operation == "GET /logs/files"
        await http.aclose()

    @pytest.mark.asyncio
    async def test_network_failure_is_transport_error(self, settings):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = client_for(settings, refuse)
        with pytest.raises(TransportError) as exc_info:
            await http.fetch_token()
        assert "connection refused" in exc_info.value.reason
        await http.aclose()

    @pytest.mark.asyncio
    async def test_malformed_body_is_transport_error(self, settings):
        http = client_for(settings, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(TransportError, match="malformed response"):
            await http.fetch_token()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_invalid_grant_is_transport_error(self, settings):
        http = client_for(settings, lambda request: httpx.Response(200, json={"csrfToken": ""}))
        with pytest.raises(TransportError):
            await http.fetch_token()
        await http.aclose()

    @pytest.mark.asyncio
    async def test_upload_calls_return_status(self, settings):
        http = client_for(settings, lambda request: httpx.Response(500))
        assert await http.finalize_upload("upload_1", "t") == 500
        await http.aclose()


class TestRequests:

    @pytest.mark.asyncio
    async def test_session_id_is_stamped(self, settings):
        seen = []

        def handler(request):
            seen.append(request.headers.get(HEADER_NAME))
            return httpx.Response(200, json={"csrfToken": "abc", "expiresIn": 60})

        bind_session_id("session-123")
        http = client_for(settings, handler)
        grant = await http.fetch_token()
        await http.aclose()

        assert seen == ["session-123"]
        assert grant.value == "abc"
        assert grant.expires_in == 60

    @pytest.mark.asyncio
    async def test_read_log_query(self, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"lines": ["a", "b"], "lastId": 9})

        http = client_for(settings, handler)
        result = await http.read_log("WCCOActrl.log", 5, 1000)
        await http.aclose()

        params = seen[0].url.params
        assert (params["file"], params["since"], params["limit"]) == ("WCCOActrl.log", "5", "1000")
        assert seen[0].headers["accept"] == "application/json"
        assert result.lines == ["a", "b"]
        assert result.last_id == 9

    @pytest.mark.asyncio
    async def test_chunk_is_multipart(self, settings):
        seen = []

        def handler(request):
            request.read()
            seen.append(form_fields(request))
            return httpx.Response(200)

        http = client_for(settings, handler)
        status = await http.upload_chunk("upload_1", 2, 5, b"\x00\x01\x02", "tok")
        await http.aclose()

        assert status == 200
        assert seen[0] == {
            "uploadId": b"upload_1",
            "chunkIndex": b"2",
            "totalChunks": b"5",
            "csrfToken": b"tok",
            "chunk": b"\x00\x01\x02",
        }

    @pytest.mark.asyncio
    async def test_probe(self, settings):
        up = client_for(settings, lambda request: httpx.Response(200))
        down = client_for(settings, lambda request: httpx.Response(503))

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        unreachable = client_for(settings, refuse)

        assert await up.probe() is True
        assert await down.probe() is False
        assert await unreachable.probe() is False
        for http in (up, down, unreachable):
            await http.aclose()


class TestProgressReader:

    def test_reports_bytes_read(self):
        reports = []
        reader = ProgressReader(io.BytesIO(b"x" * 10), 10, lambda sent, total: reports.append((sent, total)))

        reader.read(4)
        reader.read(4)
        reader.read(4)
        reader.read(4)

        assert reports == [(4, 10), (8, 10), (10, 10)]

    def test_rewind_resets_count(self):
        reports = []
        reader = ProgressReader(io.BytesIO(b"abc"), 3, lambda sent, total: reports.append(sent))
        reader.read()
        reader.seek(0)
        reader.read()
        assert reports == [3, 3]
