"""
Market data models.

Snapshots are immutable; the cache replaces them wholesale so readers never
see a half-updated payload. The summary models describe the aggregated
market indices payload built from CoinGecko and CoinMarketCap data.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DataSource(str, Enum):
    """Provenance of a market data response."""

    PRIMARY = "primary"
    CACHE = "cache"
    CACHE_STALE = "cache-stale"


class Freshness(str, Enum):
    """Age classification of a cached snapshot."""

    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


class MarketSnapshot(BaseModel):
    """
    Last-known-good payload for one query key.

    Attributes:
        key: Query key (e.g. "indices", "klines:BTC:1h")
        payload: Aggregated market data
        fetched_at: Time of the successful upstream fetch
        data_source: Upstream path that produced the payload
    """

    model_config = ConfigDict(frozen=True)

    key: str
    payload: dict[str, Any]
    fetched_at: datetime
    data_source: DataSource = DataSource.PRIMARY

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def freshness(
        self, now: datetime, fresh_seconds: float, hard_ceiling_seconds: float
    ) -> Freshness:
        """
        Classify snapshot age against the staleness budget.

        Args:
            now: Current time
            fresh_seconds: Below this age the snapshot is served as-is
            hard_ceiling_seconds: At or above this age a refetch is required

        Returns:
            FRESH, STALE or EXPIRED
        """
        age = self.age(now).total_seconds()
        if age < fresh_seconds:
            return Freshness.FRESH
        if age < hard_ceiling_seconds:
            return Freshness.STALE
        return Freshness.EXPIRED


class MarketDataResult(BaseModel):
    """Payload plus the provenance metadata exposed to API clients."""

    key: str
    payload: dict[str, Any]
    data_source: DataSource
    cache_age: int | None = Field(
        default=None, description="Seconds since last successful fetch, when served from cache"
    )
    fetched_at: datetime


class MarketOverview(BaseModel):
    total_market_cap_usd: float
    total_volume_usd: float
    market_cap_percentage: dict[str, float]
    market_cap_change_percentage_24h_usd: float


class MarketTrends(BaseModel):
    btc_dominance: float
    eth_dominance: float
    altcoin_market_cap: float
    defi_market_cap: float | None = None
    defi_dominance: float | None = None


class MarketActivity(BaseModel):
    active_cryptocurrencies: int
    markets: int
    upcoming_icos: int | None = None
    ongoing_icos: int | None = None
    ended_icos: int | None = None


class DefiData(BaseModel):
    market_cap: float
    volume_24h: float
    dominance: float
    top_coin_name: str
    top_coin_dominance: float
    eth_ratio: float


class TrendingCoin(BaseModel):
    id: str
    name: str
    symbol: str
    market_cap_rank: int | None = None
    price_btc: float | None = None
    score: int | None = None
    thumb: str | None = None


class FearGreedIndex(BaseModel):
    value: int
    value_classification: str
    timestamp: str


class FearGreedSeries(BaseModel):
    current: FearGreedIndex | None = None
    history: list[FearGreedIndex] = Field(default_factory=list)


class MarketIndicesSummary(BaseModel):
    """Merged market summary served by the indices endpoint."""

    market_overview: MarketOverview | None = None
    market_trends: MarketTrends | None = None
    market_activity: MarketActivity | None = None
    defi_data: DefiData | None = None
    trending_coins: list[TrendingCoin] = Field(default_factory=list)
    fear_greed_index: FearGreedSeries = Field(default_factory=FearGreedSeries)
    timestamp: datetime
