"""
triviabox.api.routes.achievements — Achievement listing, repair & unlocks
=========================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from triviabox.api.deps import Services, resolve_wallet_user
from triviabox.database.engine import get_session
from triviabox.services import reconciliation_service
from triviabox.services.player_service import get_or_create_user

router = APIRouter(prefix="/achievements", tags=["achievements"])
logger = logging.getLogger(__name__)


class WalletVerified(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str = Field(alias="walletAddress", min_length=1)


# ---------------------------------------------------------------------------
# GET /achievements
# ---------------------------------------------------------------------------
@router.get("")
def list_achievements(services: Services, wallet: str = Query(...)):
    """Every registered achievement with this player's status and progress."""
    user_id = resolve_wallet_user(services.engine, wallet)
    return {
        "wallet_address": wallet.lower(),
        "achievements": services.achievements.list_for_user(user_id),
    }


# ---------------------------------------------------------------------------
# GET /achievements/verify
# ---------------------------------------------------------------------------
@router.get("/verify")
def verify_achievements(
    services: Services,
    wallet: str = Query(...),
    apply: bool = Query(False),
):
    """Dry-run (default) or apply the achievement repair for one player."""
    user_id = resolve_wallet_user(services.engine, wallet)
    return reconciliation_service.repair(
        services.engine,
        user_id,
        apply_changes=apply,
        mastery_threshold=services.config.mastery_threshold,
    )


# ---------------------------------------------------------------------------
# POST /achievements/wallet-verified
# ---------------------------------------------------------------------------
@router.post("/wallet-verified")
def wallet_verified(body: WalletVerified, services: Services):
    """Award the one-off wallet bonus.  Safe to call repeatedly."""
    try:
        with get_session(services.engine) as session:
            user_id = get_or_create_user(session, body.wallet_address).id
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))

    result = services.achievements.grant_one_off(user_id)
    return {
        "achievement_type": str(result.achievement_type),
        "outcome": str(result.outcome),
        "score": result.score,
    }


# ---------------------------------------------------------------------------
# GET /achievements/notifications
# ---------------------------------------------------------------------------
@router.get("/notifications")
def pending_unlocks(services: Services, wallet: str = Query(...)):
    """Drain the unlock events queued for this player since the last poll."""
    user_id = resolve_wallet_user(services.engine, wallet)
    return {
        "notifications": [event.as_dict() for event in services.channel.drain(user_id)]
    }
