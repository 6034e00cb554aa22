"""
Client implementations for external services.

This package contains:
- The market data snapshot cache
- Upstream API clients (CoinGecko, CoinMarketCap, Hyperliquid)
"""

from .cache import CacheInterface, MarketDataCache

__all__ = ["CacheInterface", "MarketDataCache"]
