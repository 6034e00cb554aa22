"""
Upstream router.

Implements the provider contract used by the aggregator by mapping query keys
to upstream calls:

    indices                  -> merged market indices summary
    ticker                   -> 24h tickers for every perpetual
    klines:<SYM>:<interval>  -> latest candles for one perpetual

A single symbol's ticker is not a key of its own; it is selected from the
cached `ticker` snapshot so that any symbol, listed or not, costs at most the
one shared upstream fetch.
"""

from typing import Any

from ..clients.hyperliquid import MAX_KLINES, HyperliquidClient, validate_interval
from ..utils.exceptions import SymbolNotFoundError, ValidationError
from .market_indices import MarketIndicesService

INDICES_KEY = "indices"
TICKER_KEY = "ticker"
KLINES_KEY = "klines"


def normalize_symbol(symbol: str | None) -> str:
    """
    Upper-case a symbol query parameter.

    Raises:
        ValidationError: If the symbol is missing or blank
    """
    if not symbol or not symbol.strip():
        raise ValidationError("Missing required parameter: symbol", code="MISSING_SYMBOL")
    return symbol.strip().upper()


def klines_key(symbol: str | None, interval: str | None) -> str:
    """
    Query key for a klines request.

    Raises:
        ValidationError: If the symbol is missing or the interval unsupported
    """
    return f"{KLINES_KEY}:{normalize_symbol(symbol)}:{validate_interval(interval)}"


def select_ticker(payload: dict[str, Any], symbol: str) -> dict[str, Any]:
    """
    Narrow a full ticker payload to one symbol, ignoring case.

    Raises:
        SymbolNotFoundError: If the symbol is not listed
    """
    wanted = normalize_symbol(symbol)
    matches = [t for t in payload.get("tickers", []) if str(t.get("symbol", "")).upper() == wanted]
    if not matches:
        raise SymbolNotFoundError(symbol)
    return {"tickers": matches}


class UpstreamRouter:
    """Dispatches aggregator query keys to the matching upstream client."""

    def __init__(self, indices: MarketIndicesService, hyperliquid: HyperliquidClient) -> None:
        self._indices = indices
        self._hyperliquid = hyperliquid

    async def fetch(self, key: str) -> dict[str, Any]:
        """
        Fetch the payload for a query key.

        Raises:
            ValidationError: If the key is not recognized
        """
        if key == INDICES_KEY:
            summary = await self._indices.get_summary()
            return summary.model_dump(mode="json")

        if key == TICKER_KEY:
            return {"tickers": await self._hyperliquid.get_ticker()}

        name, _, rest = key.partition(":")
        if name == KLINES_KEY:
            symbol, _, interval = rest.partition(":")
            klines = await self._hyperliquid.get_klines(
                normalize_symbol(symbol), interval, limit=MAX_KLINES
            )
            return {"symbol": symbol, "interval": interval, "klines": klines}

        raise ValidationError(f"Unknown market data key '{key}'", code="UNKNOWN_MARKET_KEY")
