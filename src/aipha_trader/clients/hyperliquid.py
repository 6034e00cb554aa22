"""Hyperliquid info API client (tickers, candles, balances, positions)."""

import asyncio
import logging
import time
from typing import Any

from aipha_trader.clients.upstream import UpstreamClient
from aipha_trader.config import Settings
from aipha_trader.utils.exceptions import UpstreamAPIError, ValidationError
from aipha_trader.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

# Public interval name -> (Hyperliquid interval, candle length in ms)
KLINE_INTERVALS: dict[str, tuple[str, int]] = {
    "1min": ("1m", 60_000),
    "5min": ("5m", 300_000),
    "1h": ("1h", 3_600_000),
    "4h": ("4h", 14_400_000),
    "1d": ("1d", 86_400_000),
    "3d": ("3d", 259_200_000),
    "1w": ("1w", 604_800_000),
}
MAX_KLINES = 500


def validate_interval(interval: str | None) -> str:
    """
    Check a kline interval against the supported list.

    Raises:
        ValidationError: If the interval is missing or unsupported
    """
    if not interval or interval not in KLINE_INTERVALS:
        raise ValidationError(
            f"Invalid interval. Must be one of: {', '.join(KLINE_INTERVALS)}",
            code="INVALID_INTERVAL",
        )
    return interval


class HyperliquidClient(UpstreamClient):
    """Read-only access to the Hyperliquid /info endpoint."""

    name = "hyperliquid"

    def __init__(self, settings: Settings, rate_limiter: RateLimiter) -> None:
        super().__init__(
            base_url=settings.hyperliquid_base_url,
            timeout=settings.upstream_timeout,
            rate_limiter=rate_limiter,
            max_retries=settings.upstream_max_retries,
            retry_delay=settings.upstream_retry_delay,
        )

    async def info(self, request_type: str, **fields: Any) -> Any:
        """POST an info request, e.g. info("clearinghouseState", user=address)."""
        return await self.post_request("/info", json={"type": request_type, **fields})

    async def get_ticker(self) -> list[dict[str, Any]]:
        """24h ticker for every perpetual."""
        response = await self.info("metaAndAssetCtxs")
        if not isinstance(response, list) or len(response) != 2:
            raise UpstreamAPIError("Invalid Hyperliquid metaAndAssetCtxs response")
        meta, contexts = response
        universe = meta.get("universe", [])

        return [
            self._parse_ticker(asset["name"], ctx)
            for asset, ctx in zip(universe, contexts)
        ]

    def _parse_ticker(self, name: str, ctx: dict[str, Any]) -> dict[str, Any]:
        last = _to_float(ctx.get("midPx") or ctx.get("markPx"))
        prev = _to_float(ctx.get("prevDayPx"))
        change = last - prev if last is not None and prev is not None else None
        return {
            "symbol": name,
            "last_price": last,
            "mark_price": _to_float(ctx.get("markPx")),
            "price_change_24h": change,
            "price_change_percent_24h": (change / prev * 100) if change is not None and prev else None,
            "volume_24h": _to_float(ctx.get("dayNtlVlm")),
            "funding": _to_float(ctx.get("funding")),
            "open_interest": _to_float(ctx.get("openInterest")),
        }

    async def get_klines(
        self,
        symbol: str,
        interval: str,
        limit: int = MAX_KLINES,
        end_time: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Candles for a perpetual, oldest first.

        Args:
            symbol: Coin name, e.g. "BTC"
            interval: One of KLINE_INTERVALS
            limit: Number of candles ending at end_time
            end_time: Window end in epoch milliseconds, defaults to now

        Raises:
            ValidationError: If the interval is not supported
        """
        hl_interval, length_ms = KLINE_INTERVALS[validate_interval(interval)]
        end = end_time if end_time is not None else int(time.time() * 1000)
        start = end - length_ms * min(limit, MAX_KLINES)

        response = await self.info(
            "candleSnapshot",
            req={"coin": symbol, "interval": hl_interval, "startTime": start, "endTime": end},
        )
        if isinstance(response, dict):
            response = response.get("candles", response.get("data"))
        if not isinstance(response, list):
            raise UpstreamAPIError("Invalid Hyperliquid candleSnapshot response")

        klines = [
            {
                "time": candle.get("t"),
                "open": _to_float(candle.get("o")),
                "high": _to_float(candle.get("h")),
                "low": _to_float(candle.get("l")),
                "close": _to_float(candle.get("c")),
                "volume": _to_float(candle.get("v")),
            }
            for candle in response
        ]
        logger.debug(f"hyperliquid: {len(klines)} {interval} candles for {symbol}")
        return klines[-limit:]

    async def get_clearinghouse_state(self, address: str) -> dict[str, Any]:
        response = await self.info("clearinghouseState", user=address)
        if not isinstance(response, dict):
            raise UpstreamAPIError("Invalid Hyperliquid clearinghouseState response")
        return response

    async def get_open_orders(self, address: str) -> list[dict[str, Any]]:
        response = await self.info("openOrders", user=address)
        if not isinstance(response, list):
            raise UpstreamAPIError("Invalid Hyperliquid openOrders response")
        return response

    async def get_balance(self, address: str) -> dict[str, Any]:
        return _parse_balance(await self.get_clearinghouse_state(address))

    async def get_positions(self, address: str) -> list[dict[str, Any]]:
        positions = _parse_positions(await self.get_clearinghouse_state(address))
        logger.debug(f"hyperliquid: {len(positions)} open positions")
        return positions

    async def get_account_summary(self, address: str) -> dict[str, Any]:
        """
        Balance totals, open position count and unrealized PnL in one view.

        Reads the clearinghouse state once, alongside the open orders.
        """
        state, orders = await asyncio.gather(
            self.get_clearinghouse_state(address),
            self.get_open_orders(address),
        )
        balance = _parse_balance(state)
        positions = _parse_positions(state)
        return {
            "total_balance": balance["account_value"] or 0.0,
            "available_balance": balance["withdrawable"] or 0.0,
            "margin_used": balance["margin_used"] or 0.0,
            "positions_count": len(positions),
            "open_orders_count": len(orders),
            "total_unrealized_pnl": sum(p["unrealized_pnl"] or 0.0 for p in positions),
        }


def _parse_balance(state: dict[str, Any]) -> dict[str, Any]:
    summary = state.get("marginSummary", {})
    return {
        "account_value": _to_float(summary.get("accountValue")),
        "total_notional_position": _to_float(summary.get("totalNtlPos")),
        "margin_used": _to_float(summary.get("totalMarginUsed")),
        "withdrawable": _to_float(state.get("withdrawable")),
    }


def _parse_positions(state: dict[str, Any]) -> list[dict[str, Any]]:
    positions = []
    for entry in state.get("assetPositions", []):
        position = entry.get("position", {})
        size = _to_float(position.get("szi")) or 0.0
        if size == 0:
            continue
        positions.append({
            "symbol": position.get("coin"),
            "side": "long" if size > 0 else "short",
            "size": abs(size),
            "entry_price": _to_float(position.get("entryPx")),
            "position_value": _to_float(position.get("positionValue")),
            "unrealized_pnl": _to_float(position.get("unrealizedPnl")),
            "liquidation_price": _to_float(position.get("liquidationPx")),
        })
    return positions


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
