"""
Account endpoints.

Thin pass-through to the exchange for the authenticated address. Account
data is per-user and always fetched live.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from ...clients.hyperliquid import HyperliquidClient
from ...utils.exceptions import AddressMismatchError
from ..auth import CurrentUser, verify_address_match
from ..dependencies import get_hyperliquid_client

router = APIRouter(prefix="/api", tags=["account"])


def _check_address(user_address: str, address: str | None) -> None:
    if not verify_address_match(user_address, address):
        raise AddressMismatchError()


@router.get("/account/balance")
async def get_balance(
    user: CurrentUser,
    exchange: Annotated[HyperliquidClient, Depends(get_hyperliquid_client)],
    address: str | None = None,
) -> dict[str, Any]:
    """
    Get the exchange balance of the authenticated address.

    Args:
        address: Optional address; must match the session's if given

    Raises:
        401: Missing, unknown or expired session
        403: Address does not match the session
    """
    _check_address(user.user_address, address)
    return await exchange.get_balance(user.user_address)


@router.get("/positions")
async def get_positions(
    user: CurrentUser,
    exchange: Annotated[HyperliquidClient, Depends(get_hyperliquid_client)],
    address: str | None = None,
) -> dict[str, Any]:
    """Get open positions of the authenticated address."""
    _check_address(user.user_address, address)
    positions = await exchange.get_positions(user.user_address)
    return {"user_address": user.user_address, "positions": positions}


@router.get("/account/summary")
async def get_account_summary(
    user: CurrentUser,
    exchange: Annotated[HyperliquidClient, Depends(get_hyperliquid_client)],
    address: str | None = None,
) -> dict[str, Any]:
    """
    Get balance totals, position and open order counts and unrealized PnL.

    Raises:
        401: Missing, unknown or expired session
        403: Address does not match the session
    """
    _check_address(user.user_address, address)
    summary = await exchange.get_account_summary(user.user_address)
    return {"user_address": user.user_address, **summary}
