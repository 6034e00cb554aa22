"""
Market data endpoints.

Responses carry the payload in the body and provenance in headers:
X-Data-Source (primary | cache | cache-stale) and, for cached data,
X-Cache-Age in seconds.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response

from ...clients.hyperliquid import MAX_KLINES
from ...models.market import MarketDataResult
from ...services.market_data import MarketDataAggregator
from ...services.providers import INDICES_KEY, TICKER_KEY, klines_key, select_ticker
from ...utils.exceptions import ValidationError
from ..auth import CurrentUser
from ..dependencies import get_aggregator

router = APIRouter(prefix="/api/market", tags=["market"])

DATA_SOURCE_HEADER = "X-Data-Source"
CACHE_AGE_HEADER = "X-Cache-Age"


def apply_provenance(response: Response, result: MarketDataResult) -> None:
    """Copy a result's provenance into response headers."""
    response.headers[DATA_SOURCE_HEADER] = result.data_source.value
    if result.cache_age is not None:
        response.headers[CACHE_AGE_HEADER] = str(result.cache_age)


@router.get("/indices")
async def get_market_indices(
    user: CurrentUser,
    response: Response,
    aggregator: Annotated[MarketDataAggregator, Depends(get_aggregator)],
) -> dict[str, Any]:
    """
    Get the merged market indices summary.

    Returns:
        Market overview, trends, activity, DeFi data, trending coins and the
        fear and greed index

    Raises:
        401: Missing, unknown or expired session
        503: Provider unavailable and nothing cached

    Example:
        GET /api/market/indices
        Headers: X-Data-Source: cache, X-Cache-Age: 42
    """
    result = await aggregator.get(INDICES_KEY)
    apply_provenance(response, result)
    return result.payload


@router.get("/ticker")
async def get_ticker(
    user: CurrentUser,
    response: Response,
    aggregator: Annotated[MarketDataAggregator, Depends(get_aggregator)],
    symbol: str | None = None,
) -> dict[str, Any]:
    """
    Get 24h tickers, for all perpetuals or a single symbol.

    A single symbol is picked out of the shared ticker snapshot, so its
    provenance is that snapshot's.

    Raises:
        401: Missing, unknown or expired session
        404: Symbol not listed
        503: Provider unavailable and nothing cached
    """
    result = await aggregator.get(TICKER_KEY)
    payload = select_ticker(result.payload, symbol) if symbol else result.payload
    apply_provenance(response, result)
    return payload


@router.get("/klines")
async def get_klines(
    user: CurrentUser,
    response: Response,
    aggregator: Annotated[MarketDataAggregator, Depends(get_aggregator)],
    symbol: str | None = None,
    interval: str | None = None,
    limit: int = MAX_KLINES,
) -> dict[str, Any]:
    """
    Get the latest candles for a perpetual.

    Args:
        symbol: Perpetual name, e.g. BTC
        interval: One of 1min, 5min, 1h, 4h, 1d, 3d, 1w
        limit: Number of most recent candles, 1 to 500

    Raises:
        400: Missing symbol, unsupported interval or limit out of range
        401: Missing, unknown or expired session
        404: Symbol not listed
        503: Provider unavailable and nothing cached

    Example:
        GET /api/market/klines?symbol=BTC&interval=1h&limit=24
    """
    key = klines_key(symbol, interval)
    if not 1 <= limit <= MAX_KLINES:
        raise ValidationError(f"limit must be between 1 and {MAX_KLINES}", code="INVALID_LIMIT")

    # Unlisted symbols are rejected from the ticker snapshot, not the exchange
    tickers = await aggregator.get(TICKER_KEY)
    select_ticker(tickers.payload, symbol)

    result = await aggregator.get(key)
    apply_provenance(response, result)
    return {**result.payload, "klines": result.payload["klines"][-limit:]}
