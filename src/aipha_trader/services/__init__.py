"""Session and market data services."""

from .market_data import MarketDataAggregator, MarketDataProvider
from .session import SessionManager
from .session_store import InMemorySessionStore, SessionStore
from .sweeper import ExpirySweeper

__all__ = [
    "ExpirySweeper",
    "InMemorySessionStore",
    "MarketDataAggregator",
    "MarketDataProvider",
    "SessionManager",
    "SessionStore",
]
