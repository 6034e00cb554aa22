"""
FastAPI application factory.

Builds the core services once, keeps them on ``app.state`` and wires the
middleware, routes and background sweeper.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..clients.cache import MarketDataCache
from ..clients.coingecko import CoinGeckoClient
from ..clients.coinmarketcap import CoinMarketCapClient
from ..clients.hyperliquid import HyperliquidClient
from ..config import Settings, get_settings
from ..services.market_data import MarketDataAggregator
from ..services.market_indices import MarketIndicesService
from ..services.providers import UpstreamRouter
from ..services.session import SessionManager
from ..services.session_store import InMemorySessionStore
from ..services.sweeper import ExpirySweeper
from ..utils.rate_limiter import RateLimiter
from .middleware import error_handler_middleware
from .routes import account, auth, cron, health, market

logger = logging.getLogger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """
    Construct the session and market data services and attach them to app.state.

    Args:
        app: Application to attach services to
        settings: Application settings
    """
    store = InMemorySessionStore(stripes=settings.session_lock_stripes)
    manager = SessionManager(store, ttl_seconds=settings.session_ttl)

    coingecko = CoinGeckoClient(
        settings, RateLimiter(settings.upstream_requests_per_minute, 60, name="coingecko")
    )
    coinmarketcap = CoinMarketCapClient(
        settings, RateLimiter(settings.upstream_requests_per_minute, 60, name="coinmarketcap")
    )
    hyperliquid = HyperliquidClient(
        settings, RateLimiter(settings.hyperliquid_requests_per_minute, 60, name="hyperliquid")
    )

    provider = UpstreamRouter(MarketIndicesService(coingecko, coinmarketcap), hyperliquid)
    aggregator = MarketDataAggregator(
        cache=MarketDataCache(),
        provider=provider,
        fresh_seconds=settings.market_fresh_seconds,
        hard_ceiling_seconds=settings.market_hard_ceiling_seconds,
        timeout=settings.upstream_timeout,
    )

    app.state.settings = settings
    app.state.session_store = store
    app.state.session_manager = manager
    app.state.sweeper = ExpirySweeper(manager, settings.session_cleanup_interval)
    app.state.aggregator = aggregator
    app.state.hyperliquid = hyperliquid
    app.state.upstream_clients = [coingecko, coinmarketcap, hyperliquid]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup/shutdown tasks.

    Starts the expiry sweeper on startup; on shutdown stops it, cancels
    pending market data refreshes and closes upstream connections.
    """
    app.state.sweeper.start()

    yield

    await app.state.sweeper.stop()
    await app.state.aggregator.aclose()
    for client in app.state.upstream_clients:
        await client.aclose()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        Configured FastAPI application instance

    Configuration:
        - CORS middleware for cross-origin requests
        - Error handling middleware for domain exceptions
        - Background session expiry sweeper
        - Health, auth, market, account and cron routes
        - Interactive API docs at /docs and /redoc
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="AIpha Trader API",
        description="Session-gated market data and account gateway",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    build_services(app, settings)

    # Credentials (the session cookie) are allowed, so origins must be explicit
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Data-Source", "X-Cache-Age"],
    )

    # Error handling middleware
    app.middleware("http")(error_handler_middleware)

    # Register routes
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(market.router)
    app.include_router(account.router)
    app.include_router(cron.router)

    return app
