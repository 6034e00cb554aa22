"""
Market data aggregator.

Decides per request whether to serve a cached snapshot, refresh it in the
background or fetch synchronously, and tags every response with its
provenance. Concurrent fetches for the same query key are coalesced into a
single upstream call through an explicit in-flight registry.

State per query key:
    MISS     -> fetch now; failure propagates (nothing to fall back on)
    FRESH    -> serve cache
    STALE    -> serve cache, refresh in background, swallow refresh failure
    EXPIRED  -> try to fetch now; on failure serve the old snapshot anyway
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from ..clients.cache import CacheInterface
from ..models.market import DataSource, Freshness, MarketDataResult, MarketSnapshot
from ..utils.exceptions import (
    AIphaTraderError,
    SymbolNotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class MarketDataProvider(Protocol):
    """External provider contract: payload for a query key, or an exception."""

    async def fetch(self, key: str) -> dict[str, Any]:
        ...


def utc_now() -> datetime:
    return datetime.now(UTC)


class MarketDataAggregator:
    """
    Cache-fronted market data access with request coalescing.

    Attributes:
        _cache: Snapshot cache shared by all requests
        _provider: Upstream provider
        _fresh_seconds: Age below which a snapshot is served without refetch
        _hard_ceiling_seconds: Age at which a synchronous refetch is attempted
        _timeout: Bound on each upstream call in seconds
        _inflight: Query key -> the one running fetch for that key
    """

    def __init__(
        self,
        cache: CacheInterface,
        provider: MarketDataProvider,
        fresh_seconds: float = 300,
        hard_ceiling_seconds: float = 3600,
        timeout: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if hard_ceiling_seconds < fresh_seconds:
            raise ValueError("hard_ceiling_seconds must be >= fresh_seconds")
        self._cache = cache
        self._provider = provider
        self._fresh_seconds = fresh_seconds
        self._hard_ceiling_seconds = hard_ceiling_seconds
        self._timeout = timeout
        self._clock = clock
        self._inflight: dict[str, asyncio.Task[MarketSnapshot]] = {}
        self._background: set[asyncio.Task[None]] = set()

    async def get(self, key: str) -> MarketDataResult:
        """
        Return the best available data for a query key.

        Args:
            key: Query key, e.g. "indices" or "klines:BTC:1h"

        Returns:
            MarketDataResult tagged with data_source and cache_age

        Raises:
            UpstreamUnavailableError: On a cache miss when the provider fails
        """
        snapshot = self._cache.get(key)
        if snapshot is None:
            logger.debug(f"[{key}] cache miss, fetching")
            return self._live(await self._fetch(key))

        now = self._clock()
        state = snapshot.freshness(now, self._fresh_seconds, self._hard_ceiling_seconds)

        if state is Freshness.FRESH:
            return self._cached(snapshot, DataSource.CACHE, now)

        if state is Freshness.STALE:
            self._refresh_in_background(key)
            return self._cached(snapshot, DataSource.CACHE_STALE, now)

        try:
            return self._live(await self._fetch(key))
        except UpstreamUnavailableError as e:
            logger.warning(
                f"[{key}] snapshot past hard ceiling and refetch failed ({e.message}); "
                f"serving snapshot aged {int(snapshot.age(now).total_seconds())}s"
            )
            return self._cached(snapshot, DataSource.CACHE_STALE, self._clock())

    async def refresh(self, key: str) -> MarketDataResult:
        """
        Fetch a key now, regardless of cache state.

        Joins an in-flight fetch for the key if there is one.

        Raises:
            UpstreamUnavailableError: If the provider fails
        """
        return self._live(await self._fetch(key))

    def invalidate(self, key: str) -> bool:
        """Drop the cached snapshot for a key so the next request refetches."""
        removed = self._cache.delete(key)
        if removed:
            logger.info(f"[{key}] snapshot invalidated")
        return removed

    def is_fetching(self, key: str) -> bool:
        return key in self._inflight

    async def wait_idle(self) -> None:
        """Wait until all background refreshes have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding background refreshes and fetches."""
        tasks = [*self._background, *self._inflight.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
        self._inflight.clear()

    async def _fetch(self, key: str) -> MarketSnapshot:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch_and_store(key), name=f"fetch:{key}")
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug(f"[{key}] joining in-flight fetch")
        # Shielded so a cancelled caller does not cancel the shared fetch
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception as retrieved; every waiter has its own copy
            task.exception()

    async def _fetch_and_store(self, key: str) -> MarketSnapshot:
        try:
            payload = await asyncio.wait_for(self._provider.fetch(key), timeout=self._timeout)
        except TimeoutError as e:
            logger.warning(f"[{key}] upstream fetch timed out after {self._timeout}s")
            raise UpstreamUnavailableError(f"Timed out fetching market data '{key}'") from e
        except (UpstreamUnavailableError, SymbolNotFoundError, ValidationError):
            raise
        except Exception as e:
            logger.warning(f"[{key}] upstream fetch failed: {e}")
            raise UpstreamUnavailableError(f"Failed to fetch market data '{key}'") from e

        snapshot = MarketSnapshot(
            key=key,
            payload=payload,
            fetched_at=self._clock(),
            data_source=DataSource.PRIMARY,
        )
        self._cache.put(snapshot)
        logger.debug(f"[{key}] snapshot stored")
        return snapshot

    def _refresh_in_background(self, key: str) -> None:
        if key in self._inflight:
            return
        task = asyncio.create_task(self._background_refresh(key), name=f"refresh:{key}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_refresh(self, key: str) -> None:
        try:
            await self._fetch(key)
            logger.info(f"[{key}] background refresh succeeded")
        except AIphaTraderError as e:
            logger.warning(f"[{key}] background refresh failed, keeping stale snapshot: {e.message}")

    def _live(self, snapshot: MarketSnapshot) -> MarketDataResult:
        return MarketDataResult(
            key=snapshot.key,
            payload=snapshot.payload,
            data_source=DataSource.PRIMARY,
            cache_age=None,
            fetched_at=snapshot.fetched_at,
        )

    def _cached(
        self, snapshot: MarketSnapshot, source: DataSource, now: datetime
    ) -> MarketDataResult:
        age = max(int(snapshot.age(now).total_seconds()), 0)
        return MarketDataResult(
            key=snapshot.key,
            payload=snapshot.payload,
            data_source=source,
            cache_age=age,
            fetched_at=snapshot.fetched_at,
        )
