"""
Scheduled maintenance endpoints.

Meant for an external scheduler. When CRON_SECRET is configured the caller
must present it as a bearer token.
"""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from ...config import Settings
from ...services.market_data import MarketDataAggregator
from ...services.session import SessionManager
from ...utils.exceptions import AIphaTraderError
from ..auth import require_cron_secret
from ..dependencies import get_aggregator, get_app_settings, get_session_manager
from ..schemas import CleanupResponse, SyncResponse, SyncResult

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.get("/cleanup-sessions", response_model=CleanupResponse)
def cleanup_sessions(
    manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> CleanupResponse:
    """
    Purge expired sessions and report how many are still stored.

    Raises:
        401: Cron secret configured and not presented
        503: Session store unavailable
    """
    removed = manager.sweep_expired()
    remaining = manager.session_count()
    logger.info(f"Cron cleanup removed {removed} expired sessions, {remaining} remain")
    return CleanupResponse(
        success=True,
        message="Expired sessions cleaned up",
        removed=removed,
        remaining=remaining,
        timestamp=datetime.now(UTC),
    )


@router.get("/sync-market-data", response_model=SyncResponse)
async def sync_market_data(
    settings: Annotated[Settings, Depends(get_app_settings)],
    aggregator: Annotated[MarketDataAggregator, Depends(get_aggregator)],
) -> SyncResponse:
    """
    Refresh every configured market data key now.

    A failing key is reported in the results; it does not fail the call.
    """
    results = []
    for key in settings.market_sync_keys:
        try:
            await aggregator.refresh(key)
            results.append(SyncResult(key=key, success=True))
        except AIphaTraderError as e:
            logger.warning(f"Market sync of '{key}' failed: {e.message}")
            results.append(SyncResult(key=key, success=False, error=e.message))

    return SyncResponse(
        success=all(r.success for r in results),
        timestamp=datetime.now(UTC),
        results=results,
    )
