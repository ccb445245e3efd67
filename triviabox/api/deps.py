"""
triviabox.api.deps — FastAPI dependency injection
=================================================

The lifespan builds one :class:`TriviaServices` container and parks it on
``app.state``; every route reaches the engine, the rate limiter and the
achievement pipeline through it.  Tests swap in their own container.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import Engine

from triviabox.config import TriviaConfig
from triviabox.database.engine import get_session
from triviabox.engine.rules import RuleThresholds
from triviabox.services.achievement_recorder import AchievementRecorder
from triviabox.services.achievement_service import AchievementService
from triviabox.services.notification_service import UnlockChannel
from triviabox.services.player_service import find_user_by_wallet, normalize_wallet
from triviabox.services.rate_limiter import RateLimiter


@dataclass
class TriviaServices:
    engine: Engine
    config: TriviaConfig
    rate_limiter: RateLimiter
    channel: UnlockChannel
    recorder: AchievementRecorder
    achievements: AchievementService


def build_services(engine: Engine, config: TriviaConfig) -> TriviaServices:
    """Wire every pipeline component for one process."""
    channel = UnlockChannel()
    recorder = AchievementRecorder(engine, channel)
    return TriviaServices(
        engine=engine,
        config=config,
        rate_limiter=RateLimiter(config.rate_limits, engine=engine),
        channel=channel,
        recorder=recorder,
        achievements=AchievementService(
            engine, recorder, RuleThresholds.from_config(config)
        ),
    )


def get_services(request: Request) -> TriviaServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not configured — the app lifespan has not run")
    return services


Services = Annotated[TriviaServices, Depends(get_services)]


def resolve_wallet_user(engine: Engine, wallet_address: str) -> int:
    """Map a wallet to a user id, or raise 400 (malformed) / 404 (unknown)."""
    try:
        wallet = normalize_wallet(wallet_address)
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    with get_session(engine) as session:
        user = find_user_by_wallet(session, wallet)
        if user is None:
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Player not found")
        return user.id
