"""
triviabox.api.routes.game — Session lifecycle & completion
==========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError

from triviabox.api.deps import Services, resolve_wallet_user
from triviabox.api.rate_limit import enforce_rate_limit
from triviabox.database.models import ActivityType
from triviabox.engine.events import SessionCompletion
from triviabox.services import score_ledger
from triviabox.services.player_service import PlayerNotFoundError
from triviabox.services.rate_limiter import RateLimitAction
from triviabox.services.score_ledger import InvalidTransitionError, SessionNotFoundError
from triviabox.services.session_service import get_session_summary

router = APIRouter(prefix="/game", tags=["game"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SessionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str | None = None
    question_count: int = Field(10, alias="questionCount", ge=1, le=50)


class CompletionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: int = Field(alias="sessionId")
    wallet_address: str = Field(alias="walletAddress", min_length=1)
    final_score: int = Field(alias="finalScore", ge=0)
    correct_answers: int = Field(alias="correctAnswers", ge=0)
    total_questions: int = Field(alias="totalQuestions", ge=0)
    best_streak: int = Field(0, alias="bestStreak", ge=0)


# ---------------------------------------------------------------------------
# POST /game/sessions
# ---------------------------------------------------------------------------
@router.post("/sessions", status_code=status.HTTP_201_CREATED)
def create_game_session(body: SessionCreate, request: Request, services: Services):
    """Open a new game session."""
    client = request.client.host if request.client else "unknown"
    enforce_rate_limit(
        services.rate_limiter,
        RateLimitAction.SESSION_CREATE,
        ActivityType.SESSION,
        f"client:{client}",
    )
    session_id = score_ledger.create_session(
        services.engine, category=body.category, question_count=body.question_count
    )
    return {"session_id": session_id, "status": "active"}


# ---------------------------------------------------------------------------
# POST /game/sessions/{session_id}/cancel
# ---------------------------------------------------------------------------
@router.post("/sessions/{session_id}/cancel")
def cancel_game_session(session_id: int, services: Services):
    try:
        cancelled = score_ledger.cancel_session(services.engine, session_id)
    except SessionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Session not found")
    return {"session_id": session_id, "cancelled": cancelled}


# ---------------------------------------------------------------------------
# POST /game/complete
# ---------------------------------------------------------------------------
@router.post("/complete")
def complete_game(
    body: CompletionPayload, background_tasks: BackgroundTasks, services: Services
):
    """Credit a finished game, then evaluate session achievements.

    Achievement evaluation runs after the response is sent and cannot
    change its outcome.
    """
    user_id = resolve_wallet_user(services.engine, body.wallet_address)
    completion = SessionCompletion(
        session_id=body.session_id,
        user_id=user_id,
        final_score=body.final_score,
        correct_answers=body.correct_answers,
        total_questions=body.total_questions,
        best_streak=body.best_streak,
    )

    try:
        result = score_ledger.complete_session(services.engine, completion)
    except (SessionNotFoundError, PlayerNotFoundError) as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(exc))
    except InvalidTransitionError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc))
    except SQLAlchemyError:
        logger.exception("Score commit failed for session %d", body.session_id)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "score_commit_failed",
                "message": "Could not save the game result. Please retry.",
            },
        )

    if not result.already_completed:
        background_tasks.add_task(
            services.achievements.safe_evaluate_session,
            body.session_id,
            user_id,
            body.correct_answers,
            body.best_streak,
        )

    return {
        "success": True,
        "session_id": result.session_id,
        "credited_points": result.credited_points,
        "already_completed": result.already_completed,
    }


# ---------------------------------------------------------------------------
# GET /game/sessions/{session_id}/results
# ---------------------------------------------------------------------------
@router.get("/sessions/{session_id}/results")
def session_results(session_id: int, services: Services):
    try:
        return get_session_summary(services.engine, session_id)
    except SessionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Session not found")
