"""Rate Limiting for External Lookups

Token bucket admission plus an exponential backoff policy used by the
geolocation stage to stay within third-party quotas.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


class AsyncTokenBucket:
    """Token bucket implementation for cooperative (asyncio) callers"""

    def __init__(self, rate: float, capacity: Optional[int] = None):
        self.rate = rate  # tokens per second, 0 disables limiting
        self.capacity = capacity or max(1, int(rate * 2))
        self.tokens = float(self.capacity)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.rate > 0

    def _refill(self):
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_update = now

    def time_until_available(self, tokens: int = 1) -> float:
        """Calculate time until tokens are available"""
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.rate

    async def acquire(self, tokens: int = 1) -> float:
        """Wait until tokens are available; returns the time spent waiting"""
        if not self.enabled:
            return 0.0

        waited = 0.0
        # The lock keeps waiters in FIFO order
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return waited
                delay = self.time_until_available(tokens)
                waited += delay
                await asyncio.sleep(delay)


@dataclass
class BackoffPolicy:
    """Exponential backoff with jitter and an upper retry bound"""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1  # fraction of the delay

    def should_retry(self, attempt: int) -> bool:
        """attempt is zero-based; retries happen while attempt < max_retries"""
        return attempt < self.max_retries

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        delay += random.uniform(0, delay * self.jitter)
        if retry_after is not None and retry_after > delay:
            # Server-provided wait wins, still capped
            delay = min(retry_after, self.max_delay)
        return delay
