"""
triviabox.services.session_service — Session Result Summary
===========================================================

Aggregates a finished (or running) session's responses into the numbers
the results screen shows.
"""

from __future__ import annotations

from collections import Counter

from sqlalchemy import Engine, select

from triviabox.database.engine import get_session
from triviabox.database.models import GameSession, PlayerResponse, User
from triviabox.services.score_ledger import SessionNotFoundError


def get_session_summary(engine: Engine, session_id: int) -> dict:
    """Return category, correct answers, best streak and timing for a session.

    ``category`` is the most common category among the responses (the
    session's requested category when there are none).  Ties go to the
    category answered first.

    Raises
    ------
    SessionNotFoundError
        If the session does not exist.
    """
    with get_session(engine) as session:
        game = session.get(GameSession, session_id)
        if game is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        responses = session.scalars(
            select(PlayerResponse)
            .where(PlayerResponse.session_id == session_id)
            .order_by(PlayerResponse.id)
        ).all()

        category = game.category
        if responses:
            category = Counter(r.category for r in responses).most_common(1)[0][0]

        user = session.get(User, responses[0].user_id) if responses else None
        total = len(responses)

        return {
            "session_id": game.id,
            "status": game.status,
            "category": category,
            "correct_answers": sum(1 for r in responses if r.is_correct),
            "total_questions": total,
            "best_streak": max((r.streak_count or 0 for r in responses), default=0),
            "points": sum(r.points_earned or 0 for r in responses),
            "average_response_time": (
                round(sum(r.response_time_ms for r in responses) / total) if total else 0
            ),
            "user_id": user.id if user else None,
            "wallet_address": user.wallet_address if user else None,
            "started_at": game.started_at.isoformat() if game.started_at else None,
            "ended_at": game.ended_at.isoformat() if game.ended_at else None,
        }
