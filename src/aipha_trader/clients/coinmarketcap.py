"""CoinMarketCap API client (fear and greed index)."""

from datetime import UTC, datetime
from typing import Any

from aipha_trader.clients.upstream import UpstreamClient
from aipha_trader.config import Settings
from aipha_trader.utils.exceptions import UpstreamAPIError
from aipha_trader.utils.rate_limiter import RateLimiter


class CoinMarketCapClient(UpstreamClient):
    """Fear and greed index from the CoinMarketCap v3 API."""

    name = "coinmarketcap"

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        headers = {}
        if settings.coinmarketcap_api_key:
            headers["X-CMC_PRO_API_KEY"] = settings.coinmarketcap_api_key
        super().__init__(
            base_url=settings.coinmarketcap_base_url,
            timeout=settings.upstream_timeout,
            rate_limiter=rate_limiter,
            max_retries=settings.upstream_max_retries,
            retry_delay=settings.upstream_retry_delay,
            headers=headers,
        )

    async def _get_data(self, endpoint: str, **params: Any) -> Any:
        response = await self.get_request(endpoint, params=params or None)
        if not isinstance(response, dict):
            raise UpstreamAPIError("Invalid CoinMarketCap response")
        status = response.get("status") or {}
        # error_code arrives as either "0" or 0
        try:
            error_code = int(status.get("error_code", 0) or 0)
        except (TypeError, ValueError):
            error_code = 0
        if error_code != 0:
            raise UpstreamAPIError(
                f"CoinMarketCap error {error_code}: {status.get('error_message')}"
            )
        return response.get("data")

    async def get_fear_greed_latest(self) -> dict[str, Any] | None:
        data = await self._get_data("/fear-and-greed/latest")
        if not data:
            return None
        return {
            "value": int(data["value"]),
            "value_classification": data["value_classification"],
            "timestamp": data.get("update_time") or data.get("timestamp") or datetime.now(UTC).isoformat(),
        }

    async def get_fear_greed_history(self, limit: int = 30) -> list[dict[str, Any]]:
        """
        Historical fear and greed values.

        Args:
            limit: Number of points, clamped to 1..500
        """
        limit = min(max(limit, 1), 500)
        data = await self._get_data("/fear-and-greed/historical", limit=limit)
        if not isinstance(data, list):
            return []
        return [
            {
                "value": int(item["value"]),
                "value_classification": item["value_classification"],
                "timestamp": _to_iso(item.get("timestamp")),
            }
            for item in data
        ]


def _to_iso(timestamp: Any) -> str:
    # Historical points use unix seconds, sometimes as strings
    try:
        return datetime.fromtimestamp(int(timestamp), UTC).isoformat()
    except (TypeError, ValueError):
        return str(timestamp)
