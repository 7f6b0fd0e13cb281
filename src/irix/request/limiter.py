"""Async token bucket rate limiting."""

import asyncio
import time


class AsyncTokenBucket:
    """
    Token bucket refilled continuously at `rate` tokens per second.

    `take` sleeps for the deficit when the bucket is short.
    """

    def __init__(self, rate: float, capacity: float | None = None) -> None:
        self.rate = rate
        self.capacity = capacity or rate
        self._tokens = self.capacity
        self._last = time.monotonic()
        self._lock = asyncio.Lock()

    async def take(self, tokens: float = 1.0) -> None:
        """Consume tokens, waiting until they are available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last
            self._last = now
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            if tokens <= self._tokens:
                self._tokens -= tokens
                return
            needed = tokens - self._tokens
            self._tokens = 0.0
            wait = needed / self.rate
            # the refill during the sleep is what pays for this request
            self._last = now + wait
        await asyncio.sleep(wait)


class RateLimiter:
    """
    Named token buckets for one exchange.

    Unknown keys fall back to the "default" bucket. When disabled every
    take returns immediately.
    """

    DEFAULT = "default"

    def __init__(self, buckets: dict[str, AsyncTokenBucket] | None = None) -> None:
        self.buckets = dict(buckets or {})
        self.enabled = True

    @classmethod
    def per_second(cls, rate: float, capacity: float | None = None) -> "RateLimiter":
        """A limiter with a single default bucket."""
        return cls({cls.DEFAULT: AsyncTokenBucket(rate, capacity)})

    async def take(self, key: str | None = None, tokens: float = 1.0) -> None:
        """Wait for capacity on the named bucket."""
        if not self.enabled:
            return
        bucket = self.buckets.get(key or self.DEFAULT) or self.buckets.get(self.DEFAULT)
        if bucket is not None:
            await bucket.take(tokens)
