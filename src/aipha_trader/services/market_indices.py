"""
Market indices service.

Merges several upstream sources into one market summary:

1. CoinGecko global data (required)
2. CoinGecko DeFi data
3. CoinGecko trending coins
4. CoinMarketCap fear and greed index (latest + 30 day history)

Only the global data is required; any other source failing leaves its
section empty rather than failing the whole summary. When the CoinGecko
quota has no room for all three of its calls, the optional DeFi and trending
calls are skipped so the global data call never queues behind them.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from ..clients.coingecko import CoinGeckoClient
from ..clients.coinmarketcap import CoinMarketCapClient
from ..models.market import (
    DefiData,
    FearGreedIndex,
    FearGreedSeries,
    MarketActivity,
    MarketIndicesSummary,
    MarketOverview,
    MarketTrends,
    TrendingCoin,
)
from ..utils.exceptions import UpstreamUnavailableError

logger = logging.getLogger(__name__)

TRENDING_LIMIT = 7
FEAR_GREED_HISTORY_DAYS = 30
# global, DeFi and trending
COINGECKO_CALLS = 3


def parse_number(value: str | float | int | None) -> float:
    """Parse CoinGecko numbers, which sometimes arrive as "1,234.5" strings."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value.replace(",", ""))
    except ValueError:
        return 0.0


def build_overview(global_data: dict[str, Any]) -> MarketOverview:
    return MarketOverview(
        total_market_cap_usd=parse_number(global_data.get("total_market_cap", {}).get("usd")),
        total_volume_usd=parse_number(global_data.get("total_volume", {}).get("usd")),
        market_cap_percentage=global_data.get("market_cap_percentage", {}),
        market_cap_change_percentage_24h_usd=parse_number(
            global_data.get("market_cap_change_percentage_24h_usd")
        ),
    )


def build_trends(global_data: dict[str, Any], defi: dict[str, Any] | None) -> MarketTrends:
    """
    Dominance figures plus the altcoin market cap.

    altcoin_market_cap = total - btc share - eth share
    """
    dominance = global_data.get("market_cap_percentage", {})
    btc = parse_number(dominance.get("btc"))
    eth = parse_number(dominance.get("eth"))
    total = parse_number(global_data.get("total_market_cap", {}).get("usd"))
    return MarketTrends(
        btc_dominance=btc,
        eth_dominance=eth,
        altcoin_market_cap=total - total * btc / 100 - total * eth / 100,
        defi_market_cap=parse_number(defi.get("defi_market_cap")) if defi else None,
        defi_dominance=parse_number(defi.get("defi_dominance")) if defi else None,
    )


def build_activity(global_data: dict[str, Any]) -> MarketActivity:
    return MarketActivity(
        active_cryptocurrencies=int(global_data.get("active_cryptocurrencies", 0)),
        markets=int(global_data.get("markets", 0)),
        upcoming_icos=global_data.get("upcoming_icos"),
        ongoing_icos=global_data.get("ongoing_icos"),
        ended_icos=global_data.get("ended_icos"),
    )


def build_defi(defi: dict[str, Any]) -> DefiData:
    return DefiData(
        market_cap=parse_number(defi.get("defi_market_cap")),
        volume_24h=parse_number(defi.get("trading_volume_24h")),
        dominance=parse_number(defi.get("defi_dominance")),
        top_coin_name=defi.get("top_coin_name") or "Unknown",
        top_coin_dominance=parse_number(defi.get("top_coin_defi_dominance")),
        eth_ratio=parse_number(defi.get("defi_to_eth_ratio")),
    )


def build_trending(coins: list[dict[str, Any]]) -> list[TrendingCoin]:
    return [
        TrendingCoin(
            id=coin["id"],
            name=coin["name"],
            symbol=coin["symbol"],
            market_cap_rank=coin.get("market_cap_rank"),
            price_btc=coin.get("price_btc"),
            score=coin.get("score"),
            thumb=coin.get("thumb"),
        )
        for coin in coins[:TRENDING_LIMIT]
    ]


async def _skipped() -> None:
    return None


class MarketIndicesService:
    """Builds the merged market indices summary from upstream clients."""

    def __init__(self, coingecko: CoinGeckoClient, coinmarketcap: CoinMarketCapClient) -> None:
        self._coingecko = coingecko
        self._coinmarketcap = coinmarketcap

    async def get_summary(self) -> MarketIndicesSummary:
        """
        Fetch all sources concurrently and merge them.

        Raises:
            UpstreamUnavailableError: If CoinGecko global data cannot be fetched
        """
        spare = self._coingecko.rate_limiter.available()
        with_optional = spare >= COINGECKO_CALLS
        if not with_optional:
            logger.info(
                f"CoinGecko quota has {spare} free slots; skipping DeFi and trending this round"
            )

        global_data, defi, trending, fg_latest, fg_history = await asyncio.gather(
            self._coingecko.get_global_data(),
            self._coingecko.get_defi_global_data() if with_optional else _skipped(),
            self._coingecko.get_trending_coins() if with_optional else _skipped(),
            self._coinmarketcap.get_fear_greed_latest(),
            self._coinmarketcap.get_fear_greed_history(FEAR_GREED_HISTORY_DAYS),
            return_exceptions=True,
        )

        if isinstance(global_data, BaseException):
            if not isinstance(global_data, Exception):
                raise global_data
            logger.warning(f"Global market data unavailable: {global_data}")
            raise UpstreamUnavailableError("Global market data unavailable") from global_data

        defi = self._optional("defi", defi)
        trending = self._optional("trending", trending) or []
        fg_latest = self._optional("fear_greed_latest", fg_latest)
        fg_history = self._optional("fear_greed_history", fg_history) or []

        history = [FearGreedIndex(**item) for item in fg_history]
        current = FearGreedIndex(**fg_latest) if fg_latest else None
        if current is None and history:
            current = history[0]

        summary = MarketIndicesSummary(
            market_overview=build_overview(global_data),
            market_trends=build_trends(global_data, defi),
            market_activity=build_activity(global_data),
            defi_data=build_defi(defi) if defi else None,
            trending_coins=build_trending(trending),
            fear_greed_index=FearGreedSeries(current=current, history=history),
            timestamp=datetime.now(UTC),
        )
        logger.info(
            f"Market indices merged (defi={summary.defi_data is not None}, "
            f"trending={len(summary.trending_coins)}, "
            f"fear_greed={summary.fear_greed_index.current is not None})"
        )
        return summary

    def _optional(self, source: str, result: Any) -> Any:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning(f"Optional source {source} failed: {result}")
            return None
        return result
