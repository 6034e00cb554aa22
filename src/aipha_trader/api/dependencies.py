"""
FastAPI dependency injection helpers.

Core services are built once by the application factory and kept on
``app.state``; these dependencies hand them to routes. Tests replace them
through ``app.dependency_overrides``.
"""

from fastapi import Request

from ..clients.hyperliquid import HyperliquidClient
from ..config import Settings
from ..services.market_data import MarketDataAggregator
from ..services.session import SessionManager


def get_app_settings(request: Request) -> Settings:
    """
    Get the settings the application was created with.

    Args:
        request: Current request

    Returns:
        Application Settings
    """
    return request.app.state.settings


def get_session_manager(request: Request) -> SessionManager:
    """
    Get the session manager.

    Returns:
        SessionManager shared by all requests
    """
    return request.app.state.session_manager


def get_aggregator(request: Request) -> MarketDataAggregator:
    """
    Get the market data aggregator.

    Returns:
        MarketDataAggregator shared by all requests
    """
    return request.app.state.aggregator


def get_hyperliquid_client(request: Request) -> HyperliquidClient:
    """
    Get the exchange client used for account data.

    Note:
        Balances and positions are per-user and not cached, so routes call
        the client directly instead of going through the aggregator.
    """
    return request.app.state.hyperliquid
