"""
Rate limiter for upstream request throttling.

Keeps a sliding window of request timestamps so that no provider receives
more than its quota (CoinGecko's free tier allows 30 calls per minute).
"""

import asyncio
import logging
import time
from collections import deque

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Async sliding-window rate limiter.

    Ensures that no more than `max_requests` are made within `per_seconds` window.

    Example:
        >>> limiter = RateLimiter(max_requests=30, per_seconds=60, name="coingecko")
        >>> async def fetch_global():
        ...     await limiter.acquire()
        ...     # Make API request
    """

    def __init__(self, max_requests: int, per_seconds: float, name: str = "upstream") -> None:
        """
        Initialize rate limiter.

        Args:
            max_requests: Maximum number of requests allowed
            per_seconds: Time window in seconds
            name: Provider name used in log messages
        """
        self.max_requests = max_requests
        self.per_seconds = per_seconds
        self.name = name
        self.requests: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self.requests and self.requests[0] <= now - self.per_seconds:
            self.requests.popleft()

    def available(self) -> int:
        """Number of requests that could be made right now without waiting."""
        self._evict(time.monotonic())
        return max(self.max_requests - len(self.requests), 0)

    async def acquire(self) -> None:
        """
        Wait for a free slot in the current window and claim it.

        Note:
            Callers are served in arrival order; a waiting caller holds the
            lock so later callers queue behind it.
        """
        async with self._lock:
            now = time.monotonic()
            self._evict(now)

            if len(self.requests) >= self.max_requests:
                wait = self.requests[0] + self.per_seconds - now
                if wait > 0:
                    logger.debug(f"{self.name}: window full, waiting {wait:.2f}s")
                    await asyncio.sleep(wait)
                self._evict(time.monotonic())

            self.requests.append(time.monotonic())

    def reset(self) -> None:
        """Forget all recorded requests."""
        self.requests.clear()
