"""Embedding cache - process-lifetime memoized embeddings."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..errors import EmptyInputError, ProviderError
from ..protocols.embedder import EmbedderProtocol

logger = logging.getLogger(__name__)

CACHE_DURATION = 60 * 60  # seconds


@dataclass
class EmbeddingEntry:
    """Cached embedding."""
    vector: list[float]
    timestamp: float


class MinIntervalLimiter:
    """Enforce a minimum delay between consecutive outbound calls."""

    def __init__(
        self,
        interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize limiter.

        Args:
            interval: Minimum seconds between calls.
            clock: Monotonic clock.
            sleep: Async sleep function.
        """
        self._interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Wait until the next call is allowed, then claim the slot."""
        async with self._lock:
            if self._last_call is not None:
                delay = self._interval - (self._clock() - self._last_call)
                if delay > 0:
                    await self._sleep(delay)
            self._last_call = self._clock()


class EmbeddingCache:
    """Text -> vector cache with TTL eviction.

    Shared by every query in the process. Entries are keyed by the exact
    text; concurrent misses on the same text may both call the provider,
    and the last write wins. There is no size bound.
    """

    def __init__(
        self,
        embedder: EmbedderProtocol,
        ttl: float = CACHE_DURATION,
        clock: Callable[[], float] = time.monotonic,
        limiter: Optional[MinIntervalLimiter] = None,
        timeout: Optional[float] = 30.0,
    ):
        """Initialize cache.

        Args:
            embedder: Embedding provider.
            ttl: Entry lifetime in seconds.
            clock: Clock used for timestamps.
            limiter: Rate limiter for provider calls.
            timeout: Per-call provider timeout in seconds.
        """
        self._embedder = embedder
        self._ttl = ttl
        self._clock = clock
        self._limiter = limiter
        self._timeout = timeout
        self._entries: dict[str, EmbeddingEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def _is_expired(self, entry: EmbeddingEntry, now: float) -> bool:
        return now - entry.timestamp > self._ttl

    async def get(self, text: str) -> list[float]:
        """Return the embedding for text, calling the provider on a miss.

        Raises:
            EmptyInputError: Text is empty or whitespace.
            ProviderError: Provider failed or timed out.
        """
        if not text or not text.strip():
            raise EmptyInputError("Cannot embed empty text")

        now = self._clock()
        entry = self._entries.get(text)
        if entry is not None:
            if not self._is_expired(entry, now):
                return entry.vector
            del self._entries[text]

        if self._limiter is not None:
            await self._limiter.wait()

        try:
            vector = await asyncio.wait_for(
                self._embedder.embed(text), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"Embedding timed out after {self._timeout}s"
            ) from e

        now = self._clock()
        self._entries[text] = EmbeddingEntry(vector=list(vector), timestamp=now)
        self._purge(now)
        return self._entries[text].vector

    def _purge(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired embeddings")
