"""
Tests for the OAuth token cache.
"""

import asyncio

import pytest

from price_consensus.evidence.token_cache import TokenCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingFetcher:
    """Token fetcher that hands out numbered tokens."""

    def __init__(self, expires_in: float = 7200.0, delay: float = 0.0):
        self.expires_in = expires_in
        self.delay = delay
        self.count = 0

    async def __call__(self):
        self.count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return f'token-{self.count}', self.expires_in


class TestTokenCache:
    """Test TTL handling and single-flight refresh."""

    @pytest.mark.asyncio
    async def test_token_reused_while_fresh(self):
        clock = FakeClock()
        fetcher = CountingFetcher()
        cache = TokenCache(fetcher, refresh_margin=60, clock=clock)

        first = await cache.get()
        clock.now += 3000
        second = await cache.get()

        assert first == second == 'token-1'
        assert fetcher.count == 1

    @pytest.mark.asyncio
    async def test_refreshes_inside_margin(self):
        clock = FakeClock()
        fetcher = CountingFetcher(expires_in=7200)
        cache = TokenCache(fetcher, refresh_margin=60, clock=clock)

        await cache.get()
        clock.now += 7200 - 30
        token = await cache.get()

        assert token == 'token-2'
        assert cache.refresh_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        fetcher = CountingFetcher(delay=0.05)
        cache = TokenCache(fetcher, clock=FakeClock())

        tokens = await asyncio.gather(*(cache.get() for _ in range(10)))

        assert set(tokens) == {'token-1'}
        assert fetcher.count == 1

    @pytest.mark.asyncio
    async def test_short_lived_token_not_swallowed_by_margin(self):
        clock = FakeClock()
        fetcher = CountingFetcher(expires_in=40)
        cache = TokenCache(fetcher, refresh_margin=60, clock=clock)

        await cache.get()
        clock.now += 10
        await cache.get()

        assert fetcher.count == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self):
        fetcher = CountingFetcher()
        cache = TokenCache(fetcher, clock=FakeClock())

        await cache.get()
        cache.invalidate()
        token = await cache.get()

        assert token == 'token-2'
