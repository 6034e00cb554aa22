"""
Unit tests for the market data aggregator.

Tests cover:
- Cache miss served live with primary provenance
- Fresh, stale and past-ceiling snapshots
- Background refresh on stale reads, including swallowed failures
- Coalescing of concurrent fetches into one upstream call
- Upstream timeouts and errors on cache miss
- Errors that propagate unchanged (unknown symbol, bad key)
"""

import asyncio
from typing import Any

import pytest

from aipha_trader.clients.cache import MarketDataCache
from aipha_trader.models.market import DataSource
from aipha_trader.services.market_data import MarketDataAggregator
from aipha_trader.utils.exceptions import (
    SymbolNotFoundError,
    UpstreamAPIError,
    UpstreamUnavailableError,
)


class FakeProvider:
    """Scriptable market data provider counting its fetches."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.delay: float = 0
        self.gate: asyncio.Event | None = None

    async def fetch(self, key: str) -> dict[str, Any]:
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {"key": key, "version": len(self.calls)}


@pytest.fixture
def provider() -> FakeProvider:
    """Create a provider that succeeds immediately."""
    return FakeProvider()


@pytest.fixture
def cache() -> MarketDataCache:
    """Create an empty snapshot cache."""
    return MarketDataCache()


@pytest.fixture
def aggregator(cache, provider, clock) -> MarketDataAggregator:
    """Create an aggregator with a 300s fresh window and 3600s ceiling."""
    return MarketDataAggregator(
        cache=cache,
        provider=provider,
        fresh_seconds=300,
        hard_ceiling_seconds=3600,
        timeout=1.0,
        clock=clock,
    )


class TestAggregatorStates:
    """Test per-state behaviour of MarketDataAggregator.get."""

    @pytest.mark.asyncio
    async def test_cache_miss_fetches_live(self, aggregator, provider, cache) -> None:
        """Test a miss fetches now and tags the result primary."""
        result = await aggregator.get("indices")

        assert result.data_source is DataSource.PRIMARY
        assert result.cache_age is None
        assert result.payload == {"key": "indices", "version": 1}
        assert provider.calls == ["indices"]
        assert cache.get("indices") is not None

    @pytest.mark.asyncio
    async def test_fresh_hit_served_from_cache(self, aggregator, provider, clock) -> None:
        """Test a fresh snapshot is served without contacting the provider."""
        await aggregator.get("indices")

        clock.advance(60)
        result = await aggregator.get("indices")

        assert result.data_source is DataSource.CACHE
        assert result.cache_age == 60
        assert provider.calls == ["indices"]

    @pytest.mark.asyncio
    async def test_cache_age_whole_seconds(self, aggregator, clock) -> None:
        """Test cache age is reported in whole seconds."""
        await aggregator.get("indices")

        clock.advance(42.9)
        result = await aggregator.get("indices")

        assert result.cache_age == 42

    @pytest.mark.asyncio
    async def test_fresh_then_stale_timeline(self, aggregator, provider, clock) -> None:
        """Test fetch at t=0, cache at t=60, stale plus refresh at t=400."""
        first = await aggregator.get("indices")
        assert first.data_source is DataSource.PRIMARY

        clock.advance(60)
        second = await aggregator.get("indices")
        assert second.data_source is DataSource.CACHE
        assert second.cache_age == 60

        clock.advance(340)
        third = await aggregator.get("indices")
        assert third.data_source is DataSource.CACHE_STALE
        assert third.cache_age == 400
        assert third.payload == first.payload

        await aggregator.wait_idle()
        assert provider.calls == ["indices", "indices"]

        fourth = await aggregator.get("indices")
        assert fourth.data_source is DataSource.CACHE
        assert fourth.cache_age == 0
        assert fourth.payload == {"key": "indices", "version": 2}

    @pytest.mark.asyncio
    async def test_stale_refresh_failure_is_swallowed(
        self, aggregator, provider, clock
    ) -> None:
        """Test a failed background refresh keeps serving the old snapshot."""
        first = await aggregator.get("indices")

        provider.error = UpstreamUnavailableError("down")
        clock.advance(400)
        stale = await aggregator.get("indices")
        await aggregator.wait_idle()

        assert stale.data_source is DataSource.CACHE_STALE
        assert stale.payload == first.payload

        again = await aggregator.get("indices")
        await aggregator.wait_idle()
        assert again.data_source is DataSource.CACHE_STALE
        assert again.payload == first.payload

    @pytest.mark.asyncio
    async def test_stale_reads_share_one_refresh(self, aggregator, provider, clock) -> None:
        """Test many stale reads trigger a single background refresh."""
        await aggregator.get("indices")
        provider.gate = asyncio.Event()
        clock.advance(400)

        for _ in range(5):
            result = await aggregator.get("indices")
            assert result.data_source is DataSource.CACHE_STALE
            await asyncio.sleep(0)

        assert aggregator.is_fetching("indices")
        provider.gate.set()
        await aggregator.wait_idle()

        assert provider.calls == ["indices", "indices"]
        assert not aggregator.is_fetching("indices")

    @pytest.mark.asyncio
    async def test_past_ceiling_refetches_synchronously(
        self, aggregator, provider, clock
    ) -> None:
        """Test a snapshot past the hard ceiling is replaced before returning."""
        await aggregator.get("indices")

        clock.advance(3600)
        result = await aggregator.get("indices")

        assert result.data_source is DataSource.PRIMARY
        assert result.payload["version"] == 2

    @pytest.mark.asyncio
    async def test_past_ceiling_falls_back_on_failure(
        self, aggregator, provider, clock
    ) -> None:
        """Test the old snapshot is still served if the refetch fails."""
        first = await aggregator.get("indices")

        provider.error = UpstreamUnavailableError("down")
        clock.advance(7200)
        result = await aggregator.get("indices")

        assert result.data_source is DataSource.CACHE_STALE
        assert result.cache_age == 7200
        assert result.payload == first.payload


class TestAggregatorFailures:
    """Test upstream failures without a usable snapshot."""

    @pytest.mark.asyncio
    async def test_miss_failure_propagates(self, aggregator, provider, cache) -> None:
        """Test a miss with a failing provider raises and caches nothing."""
        provider.error = UpstreamUnavailableError("down")

        with pytest.raises(UpstreamUnavailableError):
            await aggregator.get("indices")

        assert cache.get("indices") is None
        assert not aggregator.is_fetching("indices")

    @pytest.mark.asyncio
    async def test_miss_recovers_after_failure(self, aggregator, provider) -> None:
        """Test the next request after a failure fetches again."""
        provider.error = UpstreamUnavailableError("down")
        with pytest.raises(UpstreamUnavailableError):
            await aggregator.get("indices")

        provider.error = None
        result = await aggregator.get("indices")

        assert result.data_source is DataSource.PRIMARY
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_unavailable(self, aggregator, provider) -> None:
        """Test arbitrary provider errors surface as UpstreamUnavailableError."""
        provider.error = UpstreamAPIError("bad payload")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await aggregator.get("indices")

        assert isinstance(exc_info.value.__cause__, UpstreamAPIError)

    @pytest.mark.asyncio
    async def test_timeout(self, cache, provider, clock) -> None:
        """Test a slow provider is cut off at the timeout."""
        provider.delay = 1.0
        aggregator = MarketDataAggregator(cache, provider, timeout=0.05, clock=clock)

        with pytest.raises(UpstreamUnavailableError):
            await aggregator.get("indices")

        assert cache.get("indices") is None

    @pytest.mark.asyncio
    async def test_symbol_not_found_propagates(self, aggregator, provider) -> None:
        """Test an unknown symbol is not masked as an outage."""
        provider.error = SymbolNotFoundError("NOPE")

        with pytest.raises(SymbolNotFoundError):
            await aggregator.get("klines:NOPE:1h")

    def test_ceiling_below_fresh_window(self, cache, provider) -> None:
        """Test the hard ceiling cannot be shorter than the fresh window."""
        with pytest.raises(ValueError):
            MarketDataAggregator(cache, provider, fresh_seconds=600, hard_ceiling_seconds=60)


class TestAggregatorCoalescing:
    """Test in-flight request coalescing."""

    @pytest.mark.asyncio
    async def test_concurrent_misses_single_fetch(self, aggregator, provider) -> None:
        """Test N concurrent requests for one key make exactly one upstream call."""
        provider.gate = asyncio.Event()

        tasks = [asyncio.create_task(aggregator.get("indices")) for _ in range(20)]
        await asyncio.sleep(0)
        assert aggregator.is_fetching("indices")

        provider.gate.set()
        results = await asyncio.gather(*tasks)

        assert provider.calls == ["indices"]
        assert {r.payload["version"] for r in results} == {1}
        assert not aggregator.is_fetching("indices")

    @pytest.mark.asyncio
    async def test_concurrent_failure_shared(self, aggregator, provider) -> None:
        """Test all waiters on a failing fetch get the error."""
        provider.gate = asyncio.Event()
        provider.error = UpstreamUnavailableError("down")

        tasks = [asyncio.create_task(aggregator.get("indices")) for _ in range(5)]
        await asyncio.sleep(0)
        provider.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert provider.calls == ["indices"]
        assert all(isinstance(r, UpstreamUnavailableError) for r in results)

    @pytest.mark.asyncio
    async def test_different_keys_fetch_independently(self, aggregator, provider) -> None:
        """Test coalescing is per key."""
        await asyncio.gather(aggregator.get("indices"), aggregator.get("ticker"))

        assert sorted(provider.calls) == ["indices", "ticker"]

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_fetch(
        self, aggregator, provider, cache
    ) -> None:
        """Test the shared fetch completes when one waiter is cancelled."""
        provider.gate = asyncio.Event()

        first = asyncio.create_task(aggregator.get("indices"))
        second = asyncio.create_task(aggregator.get("indices"))
        await asyncio.sleep(0)

        first.cancel()
        provider.gate.set()
        result = await second

        assert result.data_source is DataSource.PRIMARY
        assert cache.get("indices") is not None
        assert provider.calls == ["indices"]


class TestAggregatorMaintenance:
    """Test refresh, invalidate and shutdown."""

    @pytest.mark.asyncio
    async def test_refresh_ignores_freshness(self, aggregator, provider) -> None:
        """Test refresh always contacts the provider."""
        await aggregator.get("indices")
        result = await aggregator.refresh("indices")

        assert result.data_source is DataSource.PRIMARY
        assert result.payload["version"] == 2

    @pytest.mark.asyncio
    async def test_invalidate(self, aggregator, provider) -> None:
        """Test an invalidated key is fetched again on next read."""
        await aggregator.get("indices")

        assert aggregator.invalidate("indices") is True
        assert aggregator.invalidate("indices") is False

        result = await aggregator.get("indices")
        assert result.data_source is DataSource.PRIMARY
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_aclose_cancels_background_refresh(
        self, aggregator, provider, clock
    ) -> None:
        """Test shutdown cancels a pending background refresh."""
        await aggregator.get("indices")
        provider.gate = asyncio.Event()
        clock.advance(400)
        await aggregator.get("indices")
        await asyncio.sleep(0)

        await aggregator.aclose()

        assert not aggregator.is_fetching("indices")
        await aggregator.wait_idle()
