"""
Tests for the anti-forgery token lifecycle.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pmon_client.components.security import TokenManager
from pmon_client.schemas import TokenGrant
from pmon_client.utils.exceptions import TokenUnavailableError, TransportError


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_http(*grants):
    http = MagicMock()
    http.fetch_token = AsyncMock(side_effect=list(grants))
    return http


def grant(value: str, expires_in: float = 300.0) -> TokenGrant:
    return TokenGrant(csrfToken=value, expiresIn=expires_in)


class TestAcquire:

    @pytest.mark.asyncio
    async def test_cached_until_refresh_margin(self):
        """acquire() returns the cached value until expiry - 60s, then fetches."""
        clock = FakeClock()
        http = make_http(grant("first"), grant("second"))
        tokens = TokenManager(http, refresh_margin=60.0, clock=clock)

        assert await tokens.acquire() == "first"
        clock.now += 240.0  # exactly 60s left
        assert await tokens.acquire() == "first"
        assert http.fetch_token.await_count == 1

        clock.now += 0.5
        assert await tokens.acquire() == "second"
        assert http.fetch_token.await_count == 2

    @pytest.mark.asyncio
    async def test_short_lived_grant_is_refetched_every_time(self):
        clock = FakeClock()
        http = make_http(grant("a", 30.0), grant("b", 30.0))
        tokens = TokenManager(http, refresh_margin=60.0, clock=clock)

        assert await tokens.acquire() == "a"
        assert await tokens.acquire() == "b"

    @pytest.mark.asyncio
    async def test_fetch_failure_raises_and_leaves_cache_empty(self):
        http = make_http(TransportError("GET /project/csrftoken", "connection refused"))
        tokens = TokenManager(http)

        with pytest.raises(TokenUnavailableError):
            await tokens.acquire()
        assert tokens.cached is None
        assert tokens.get_stats()["fetch_failures"] == 1


class TestConsume:

    @pytest.mark.asyncio
    async def test_consume_forces_fetch_even_when_unexpired(self):
        clock = FakeClock()
        http = make_http(grant("first"), grant("second"))
        tokens = TokenManager(http, clock=clock)

        await tokens.acquire()
        tokens.consume()
        assert tokens.cached is None
        assert await tokens.acquire() == "second"

    @pytest.mark.asyncio
    async def test_rotate_returns_replacement(self):
        http = make_http(grant("first"), grant("second"))
        tokens = TokenManager(http)

        await tokens.acquire()
        assert await tokens.rotate() == "second"
        assert tokens.cached.value == "second"

    @pytest.mark.asyncio
    async def test_rotate_swallows_fetch_failure(self):
        http = make_http(grant("first"), TransportError("GET /project/csrftoken", "timeout"))
        tokens = TokenManager(http)

        await tokens.acquire()
        assert await tokens.rotate() is None
        assert tokens.cached is None


class TestStats:

    @pytest.mark.asyncio
    async def test_stats_report_remaining_lifetime(self):
        clock = FakeClock()
        tokens = TokenManager(make_http(grant("t", 300.0)), clock=clock)
        await tokens.acquire()
        clock.now += 100.0

        stats = tokens.get_stats()
        assert stats["cached"] is True
        assert stats["expires_in"] == 200.0
        assert stats["fetch_count"] == 1
