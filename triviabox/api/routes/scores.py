"""
triviabox.api.routes.scores — Answer ingestion, leaderboards & stats
====================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from triviabox.api.deps import Services, resolve_wallet_user
from triviabox.api.rate_limit import enforce_rate_limit
from triviabox.database.models import ActivityType
from triviabox.engine.events import ResponseSubmission
from triviabox.services import score_ledger
from triviabox.services.rate_limiter import RateLimitAction
from triviabox.services.score_ledger import InvalidTransitionError, SessionNotFoundError

router = APIRouter(prefix="/scores", tags=["scores"])
logger = logging.getLogger(__name__)


class AnswerPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(alias="sessionId")
    wallet_address: str = Field(alias="walletAddress", min_length=1)
    question_id: int = Field(alias="questionId")
    category: str = Field(min_length=1)
    is_correct: bool = Field(alias="isCorrect")
    started_at: datetime = Field(alias="startedAt")
    ended_at: datetime = Field(alias="endedAt")


# ---------------------------------------------------------------------------
# POST /scores
# ---------------------------------------------------------------------------
@router.post("")
def submit_answer(
    body: AnswerPayload, background_tasks: BackgroundTasks, services: Services
):
    """Score one answer and queue response-level achievement checks."""
    enforce_rate_limit(
        services.rate_limiter,
        RateLimitAction.SCORE_SUBMIT,
        ActivityType.ANSWER,
        body.session_id,
    )
    submission = ResponseSubmission(
        session_id=body.session_id,
        wallet_address=body.wallet_address,
        question_id=body.question_id,
        category=body.category,
        is_correct=body.is_correct,
        started_at=body.started_at,
        ended_at=body.ended_at,
    )

    try:
        result = score_ledger.record_response(services.engine, submission)
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    except SessionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Session not found")
    except InvalidTransitionError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc))
    except SQLAlchemyError:
        logger.exception("Answer commit failed for session %d", body.session_id)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "score_commit_failed", "message": "Could not save the answer."},
        )

    if not result.duplicate:
        background_tasks.add_task(
            services.achievements.safe_evaluate_response, result.response_id
        )

    return {
        "response_id": result.response_id,
        "points": result.points,
        "max_points": result.max_points,
        "streak": result.streak,
        "time_remaining": result.time_remaining,
        "duplicate": result.duplicate,
    }


# ---------------------------------------------------------------------------
# GET /scores/leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def leaderboard(services: Services, limit: int | None = Query(None, ge=1, le=100)):
    size = limit or services.config.leaderboard_size
    return {"leaderboard": score_ledger.get_leaderboard(services.engine, limit=size)}


@router.get("/weekly")
def weekly_leaderboard(
    services: Services,
    week: int | None = Query(None, ge=1, le=54),
    year: int | None = Query(None, ge=2000),
    limit: int | None = Query(None, ge=1, le=100),
):
    size = limit or services.config.leaderboard_size
    return {
        "leaderboard": score_ledger.get_weekly_leaderboard(
            services.engine, week=week, year=year, limit=size
        )
    }


# ---------------------------------------------------------------------------
# GET /scores/stats
# ---------------------------------------------------------------------------
@router.get("/stats")
def player_stats(services: Services, wallet: str = Query(...)):
    user_id = resolve_wallet_user(services.engine, wallet)
    return score_ledger.get_player_stats(services.engine, user_id)
