"""
Token-bucket rate limiting for paid data sources.

Each source gets a per-second and a per-minute bucket. A call waits for
tokens at most `wait_timeout` seconds and then fails fast with
RateLimitedError instead of queueing indefinitely.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from prospector.core.errors import RateLimitedError

logger = logging.getLogger(__name__)


class TokenBucket:
    """Classic token bucket: `capacity` tokens refilled evenly over `period` seconds."""

    def __init__(self, capacity: int, period: float, clock: Callable[[], float] = time.monotonic):
        if capacity <= 0 or period <= 0:
            raise ValueError("capacity and period must be positive")
        self.capacity = float(capacity)
        self.period = float(period)
        self.rate = self.capacity / self.period
        self._clock = clock
        self.tokens = self.capacity
        self.updated_at = clock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self.updated_at, 0.0)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.updated_at = now

    def wait_time(self, tokens: float = 1.0) -> float:
        """Seconds until `tokens` are available (0 when available now)."""
        self._refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.rate

    def consume(self, tokens: float = 1.0) -> None:
        self._refill()
        self.tokens -= tokens


class SourceRateLimiter:
    """
    Per-source limiter combining a per-second and a per-minute bucket.
    """

    def __init__(
        self,
        source: str,
        per_second: Optional[int] = None,
        per_minute: Optional[int] = None,
        wait_timeout: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.wait_timeout = wait_timeout
        self._clock = clock
        self.buckets: List[TokenBucket] = []
        if per_second:
            self.buckets.append(TokenBucket(per_second, 1.0, clock))
        if per_minute:
            self.buckets.append(TokenBucket(per_minute, 60.0, clock))
        self._lock = asyncio.Lock()

    def wait_time(self) -> float:
        return max((b.wait_time() for b in self.buckets), default=0.0)

    def is_exhausted(self) -> bool:
        """True when a call right now could not get a token within the wait timeout."""
        return self.wait_time() > self.wait_timeout

    async def acquire(self) -> None:
        """Take one token from every bucket, waiting up to wait_timeout."""
        if not self.buckets:
            return

        async with self._lock:
            deadline = self._clock() + self.wait_timeout
            while True:
                wait = self.wait_time()
                if wait <= 0:
                    for bucket in self.buckets:
                        bucket.consume()
                    return

                remaining = deadline - self._clock()
                if wait > remaining:
                    logger.info(f"Rate limited on {self.source}, next token in {wait:.2f}s")
                    raise RateLimitedError(self.source, retry_after=wait)

                logger.debug(f"Waiting {wait:.2f}s for {self.source} rate limit")
                await asyncio.sleep(wait)

    def get_usage(self) -> Dict[str, float]:
        """Return available tokens per window for diagnostics."""
        usage = {}
        for bucket in self.buckets:
            bucket.wait_time()
            usage[f"per_{int(bucket.period)}s"] = round(bucket.tokens, 2)
        return usage
