"""
Anti-forgery token lifecycle.

The service issues short-lived tokens required on every state-changing
request. The client treats them as single-use: after a token has been sent
it is consumed and the next request fetches a fresh one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from pmon_client.config.logging import get_logger, mask_token
from pmon_client.infrastructure.http import ServiceHttpClient
from pmon_client.utils.exceptions import TokenUnavailableError, TransportError

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Token:
    """A token value and the absolute instant it stops being accepted."""

    value: str
    expires_at: float

    def expires_within(self, margin: float, now: float) -> bool:
        return self.expires_at - now < margin


class TokenManager:
    """
    Owns the one cached token of a client session.

    Concurrent acquire() calls during a refresh are not coalesced; each
    performs its own fetch and the last one to finish wins the cache.

    Usage:
        token = await tokens.acquire()
        await http.manager_command(..., token=token)
        tokens.consume()
    """

    def __init__(
        self,
        http: ServiceHttpClient,
        refresh_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            http: Client used to fetch tokens.
            refresh_margin: Refresh when expiry is this many seconds away or less.
            clock: Time source in seconds, injectable for tests.
        """
        self._http = http
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._token: Token | None = None
        self._fetch_count = 0
        self._fetch_failures = 0

    @property
    def cached(self) -> Token | None:
        return self._token

    async def acquire(self) -> str:
        """
        Return a usable token, fetching one if none is cached or it is near expiry.

        Raises:
            TokenUnavailableError: The fetch failed; the cache stays empty.
        """
        now = self._clock()
        if self._token is not None and not self._token.expires_within(self._refresh_margin, now):
            return self._token.value

        self._token = None
        self._fetch_count += 1
        try:
            grant = await self._http.fetch_token()
        except TransportError as exc:
            self._fetch_failures += 1
            raise TokenUnavailableError(exc.reason) from exc

        self._token = Token(grant.value, self._clock() + grant.expires_in)
        logger.debug(
            "Token refreshed",
            token=mask_token(grant.value),
            expires_in=grant.expires_in,
        )
        return grant.value

    def consume(self) -> None:
        """Invalidate the cached token after it has been sent."""
        self._token = None

    async def rotate(self) -> str | None:
        """
        Consume the current token and fetch its replacement.

        Returns:
            The new token, or None if the fetch failed (already logged).
        """
        self.consume()
        try:
            return await self.acquire()
        except TokenUnavailableError:
            return None

    def get_stats(self) -> dict[str, Any]:
        return {
            "cached": self._token is not None,
            "expires_in": (
                round(self._token.expires_at - self._clock(), 1) if self._token else None
            ),
            "fetch_count": self._fetch_count,
            "fetch_failures": self._fetch_failures,
        }
