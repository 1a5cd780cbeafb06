"""
TTL-aware access token cache with single-flight refresh.

Injected into evidence sources that authenticate with short-lived OAuth
tokens. Tokens are refreshed proactively ``refresh_margin`` seconds before
they expire, and concurrent callers share one refresh.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from ..logging import get_logger

logger = get_logger(__name__)

# Returns (access_token, expires_in_seconds)
TokenFetcher = Callable[[], Awaitable[tuple[str, float]]]


class TokenCache:
    """
    Usage:
        cache = TokenCache(fetch_token=source.request_token)
        token = await cache.get()
    """

    def __init__(
        self,
        fetch_token: TokenFetcher,
        refresh_margin: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            fetch_token: Coroutine function returning (token, expires_in_seconds)
            refresh_margin: Seconds before expiry at which a token is treated as stale
            clock: Monotonic clock in seconds; tests pass a fake
        """
        self._fetch_token = fetch_token
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._refresh_at: float = 0.0
        self.refresh_count = 0

    def _is_fresh(self) -> bool:
        return self._token is not None and self._clock() < self._refresh_at

    async def get(self) -> str:
        """Return a valid token, refreshing it at most once across concurrent callers."""
        if self._is_fresh():
            return self._token  # type: ignore[return-value]

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self._is_fresh():
                return self._token  # type: ignore[return-value]

            token, expires_in = await self._fetch_token()
            now = self._clock()
            # Never let the margin swallow a short-lived token entirely
            lifetime = max(expires_in - self.refresh_margin, expires_in / 2)
            self._token = token
            self._refresh_at = now + lifetime
            self.refresh_count += 1
            logger.debug('token_cache.refreshed', expires_in=expires_in)
            return token

    def invalidate(self) -> None:
        """Drop the cached token, e.g. after a 401."""
        self._token = None
        self._refresh_at = 0.0
