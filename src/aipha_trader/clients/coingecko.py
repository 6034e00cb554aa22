"""CoinGecko API client."""

import logging
from typing import Any

from aipha_trader.clients.upstream import UpstreamClient
from aipha_trader.config import Settings
from aipha_trader.utils.exceptions import UpstreamAPIError
from aipha_trader.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class CoinGeckoClient(UpstreamClient):
    """Global market, DeFi and trending data from CoinGecko."""

    name = "coingecko"

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        headers = {}
        if settings.coingecko_api_key:
            headers["x-cg-demo-api-key"] = settings.coingecko_api_key
        super().__init__(
            base_url=settings.coingecko_base_url,
            timeout=settings.upstream_timeout,
            rate_limiter=rate_limiter,
            max_retries=settings.upstream_max_retries,
            retry_delay=settings.upstream_retry_delay,
            headers=headers,
        )

    async def get_global_data(self) -> dict[str, Any]:
        """
        Total market cap, volume, dominance and activity counters.
        """
        response = await self.get_request("/global")
        if not isinstance(response, dict) or not isinstance(response.get("data"), dict):
            raise UpstreamAPIError("Invalid CoinGecko global data")
        return response["data"]

    async def get_defi_global_data(self) -> dict[str, Any]:
        response = await self.get_request("/global/decentralized_finance_defi")
        if not isinstance(response, dict) or not isinstance(response.get("data"), dict):
            raise UpstreamAPIError("Invalid CoinGecko DeFi data")
        return response["data"]

    async def get_trending_coins(self) -> list[dict[str, Any]]:
        """Trending search coins, each unwrapped from its {"item": ...} envelope."""
        response = await self.get_request("/search/trending")
        if not isinstance(response, dict):
            raise UpstreamAPIError("Invalid CoinGecko trending response")
        coins = [entry["item"] for entry in response.get("coins", []) if "item" in entry]
        logger.debug(f"coingecko: {len(coins)} trending coins")
        return coins
