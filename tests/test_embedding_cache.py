import asyncio

import pytest

from notes_rag.core.errors import EmptyInputError, ProviderError
from notes_rag.core.services.embedding_cache import (
    CACHE_DURATION,
    EmbeddingCache,
    MinIntervalLimiter,
)
from conftest import FakeClock, FakeEmbedder


class TestEmbeddingCache:
    """TTL cache behaviour."""

    @pytest.mark.asyncio
    async def test_hit_within_ttl_then_miss_after(self):
        embedder = FakeEmbedder()
        clock = FakeClock()
        cache = EmbeddingCache(embedder, clock=clock)

        first = await cache.get("hello")
        second = await cache.get("hello")
        assert first == second
        assert len(embedder.calls) == 1

        clock.advance(CACHE_DURATION + 1)
        await cache.get("hello")
        assert len(embedder.calls) == 2

    @pytest.mark.asyncio
    async def test_keyed_by_exact_text(self):
        embedder = FakeEmbedder()
        cache = EmbeddingCache(embedder, clock=FakeClock())

        await cache.get("hello")
        await cache.get("Hello")
        await cache.get("hello ")
        assert len(embedder.calls) == 3
        assert len(cache) == 3

    @pytest.mark.asyncio
    async def test_empty_input_rejected_before_provider(self):
        embedder = FakeEmbedder()
        cache = EmbeddingCache(embedder, clock=FakeClock())

        with pytest.raises(EmptyInputError):
            await cache.get("   ")
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_provider_error_propagates_and_is_not_cached(self):
        embedder = FakeEmbedder(fail=True)
        cache = EmbeddingCache(embedder, clock=FakeClock())

        with pytest.raises(ProviderError):
            await cache.get("hello")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_timeout_becomes_provider_error(self):
        class SlowEmbedder:
            async def embed(self, text):
                await asyncio.sleep(1)
                return [1.0]

        cache = EmbeddingCache(SlowEmbedder(), timeout=0.01)
        with pytest.raises(ProviderError):
            await cache.get("hello")

    @pytest.mark.asyncio
    async def test_expired_entries_purged_on_write(self):
        clock = FakeClock()
        cache = EmbeddingCache(FakeEmbedder(), clock=clock, ttl=10)

        await cache.get("old")
        clock.advance(11)
        await cache.get("new")
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        embedder = FakeEmbedder()
        cache = EmbeddingCache(embedder, clock=FakeClock())
        await cache.get("hello")
        cache.clear()
        await cache.get("hello")
        assert len(embedder.calls) == 2

    @pytest.mark.asyncio
    async def test_limiter_used_on_miss_only(self):
        clock = FakeClock()
        sleeps: list[float] = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            clock.advance(delay)

        limiter = MinIntervalLimiter(0.1, clock=clock, sleep=fake_sleep)
        cache = EmbeddingCache(FakeEmbedder(), clock=clock, limiter=limiter)

        await cache.get("a")
        await cache.get("a")
        await cache.get("b")
        assert sleeps == [pytest.approx(0.1)]


class TestMinIntervalLimiter:

    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        limiter = MinIntervalLimiter(0.1, clock=FakeClock(), sleep=fake_sleep)
        await limiter.wait()
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_waits_remaining_interval(self):
        clock = FakeClock()
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)
            clock.advance(delay)

        limiter = MinIntervalLimiter(0.1, clock=clock, sleep=fake_sleep)
        await limiter.wait()
        clock.advance(0.04)
        await limiter.wait()
        assert sleeps == [pytest.approx(0.06)]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval_elapsed(self):
        clock = FakeClock()
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        limiter = MinIntervalLimiter(0.1, clock=clock, sleep=fake_sleep)
        await limiter.wait()
        clock.advance(0.5)
        await limiter.wait()
        assert sleeps == []
