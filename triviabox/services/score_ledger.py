"""
triviabox.services.score_ledger — Session / Score / Streak Persistence
======================================================================

The Score Ledger is the sole writer of score-affecting fields:
``users``, ``game_sessions``, ``player_responses``, ``streak_history``
and ``weekly_scores``.

:func:`complete_session` runs as **one** transaction:

    1. ``active → completed`` (compare-and-set on status)
    2. append a streak_history row when best_streak > 0
    3. credit the user (points, games played, best streak, last played)
    4. upsert this week's weekly_scores row

Any failure rolls all four back.  A session that is already completed
is a no-op that credits nothing, so a caller may safely retry a
completion whose outcome it never saw.

Achievement evaluation is *not* part of this module.  Callers dispatch
it after the transaction commits (see
:mod:`triviabox.services.achievement_service`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triviabox.constants import canonicalize_category, week_of_year
from triviabox.database.engine import get_session
from triviabox.database.models import (
    Achievement,
    GameSession,
    PlayerResponse,
    SessionStatus,
    StreakHistory,
    User,
    WeeklyScore,
)
from triviabox.engine.events import ResponseSubmission, SessionCompletion
from triviabox.engine.scoring import calculate_score, validate_timing
from triviabox.services.player_service import PlayerNotFoundError, get_or_create_user

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """No game session with the given id."""


class InvalidTransitionError(Exception):
    """The requested transition is illegal from the session's current state."""


@dataclass(frozen=True, slots=True)
class CompletionResult:
    session_id: int
    user_id: int
    credited_points: int
    already_completed: bool = False


@dataclass(frozen=True, slots=True)
class ResponseResult:
    response_id: int
    user_id: int
    session_id: int
    points: int
    max_points: int
    streak: int
    time_remaining: float
    duplicate: bool = False


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------
def create_session(
    engine: Engine, *, category: str | None = None, question_count: int = 10
) -> int:
    """Open a new ``active`` session and return its id."""
    if question_count < 1:
        raise ValueError("question_count must be >= 1")
    with get_session(engine) as session:
        game = GameSession(
            status=SessionStatus.ACTIVE,
            category=canonicalize_category(category) if category else None,
            question_count=question_count,
            started_at=datetime.now(UTC),
        )
        session.add(game)
        session.flush()
        logger.info("Session %d created (category=%s)", game.id, game.category)
        return game.id


def _transition(
    session: Session, session_id: int, target: SessionStatus, now: datetime
) -> bool:
    """Compare-and-set ``active → target``.  Returns ``False`` if not active."""
    result = session.execute(
        update(GameSession)
        .where(GameSession.id == session_id, GameSession.status == SessionStatus.ACTIVE)
        .values(status=target, ended_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def cancel_session(engine: Engine, session_id: int, *, now: datetime | None = None) -> bool:
    """Abandon an active session.

    Returns ``True`` if the session was cancelled, ``False`` if it was
    already terminal (no-op).

    Raises
    ------
    SessionNotFoundError
        If no such session exists.
    """
    now = now or datetime.now(UTC)
    with get_session(engine) as session:
        if session.get(GameSession, session_id) is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        cancelled = _transition(session, session_id, SessionStatus.CANCELLED, now)
    if cancelled:
        logger.info("Session %d cancelled", session_id)
    return cancelled


def abandon_stale_sessions(
    engine: Engine, older_than: timedelta, *, now: datetime | None = None
) -> int:
    """Cancel every session still ``active`` after *older_than*.  Returns the count."""
    now = now or datetime.now(UTC)
    cutoff = now - older_than
    with get_session(engine) as session:
        result = session.execute(
            update(GameSession)
            .where(
                GameSession.status == SessionStatus.ACTIVE,
                GameSession.started_at < cutoff,
            )
            .values(status=SessionStatus.CANCELLED, ended_at=now)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
    if count:
        logger.info("Abandoned %d stale sessions (started before %s)", count, cutoff.isoformat())
    return count


# ---------------------------------------------------------------------------
# Completion — the atomic ledger transaction
# ---------------------------------------------------------------------------
def _add_weekly_score(
    session: Session, user_id: int, points: int, now: datetime
) -> None:
    week, year = week_of_year(now)
    where = (
        WeeklyScore.user_id == user_id,
        WeeklyScore.week == week,
        WeeklyScore.year == year,
    )
    row_id = session.scalar(select(WeeklyScore.id).where(*where))
    if row_id is None:
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(WeeklyScore(user_id=user_id, week=week, year=year, score=points))
                session.flush()
            return
        except IntegrityError:
            # A concurrent completion created the row first.
            row_id = session.scalar(select(WeeklyScore.id).where(*where))

    session.execute(
        update(WeeklyScore)
        .where(WeeklyScore.id == row_id)
        .values(score=WeeklyScore.score + points)
        .execution_options(synchronize_session=False)
    )


def complete_session(
    engine: Engine,
    completion: SessionCompletion,
    *,
    now: datetime | None = None,
) -> CompletionResult:
    """Credit a finished game exactly once.

    Raises
    ------
    SessionNotFoundError
        Unknown session id.
    PlayerNotFoundError
        Unknown user id.
    InvalidTransitionError
        The session was cancelled.
    sqlalchemy.exc.SQLAlchemyError
        Any storage failure; nothing has been written.
    """
    now = now or datetime.now(UTC)

    with get_session(engine) as session:
        game = session.get(GameSession, completion.session_id)
        if game is None:
            raise SessionNotFoundError(f"Session {completion.session_id} not found")
        if session.get(User, completion.user_id) is None:
            raise PlayerNotFoundError(f"User {completion.user_id} not found")

        if game.status == SessionStatus.CANCELLED:
            raise InvalidTransitionError(
                f"Session {completion.session_id} was cancelled and cannot be completed"
            )

        # Step 1: the status CAS also guards against concurrent completions.
        if game.status == SessionStatus.COMPLETED or not _transition(
            session, completion.session_id, SessionStatus.COMPLETED, now
        ):
            logger.info(
                "Session %d already completed; nothing credited", completion.session_id
            )
            return CompletionResult(
                session_id=completion.session_id,
                user_id=completion.user_id,
                credited_points=0,
                already_completed=True,
            )

        # Step 2
        if completion.best_streak > 0:
            session.add(StreakHistory(
                user_id=completion.user_id,
                session_id=completion.session_id,
                streak_count=completion.best_streak,
                points_earned=completion.final_score,
                recorded_at=now,
            ))

        # Step 3
        session.execute(
            update(User)
            .where(User.id == completion.user_id)
            .values(
                total_points=User.total_points + completion.final_score,
                games_played=User.games_played + 1,
                best_streak=case(
                    (User.best_streak < completion.best_streak, completion.best_streak),
                    else_=User.best_streak,
                ),
                last_played_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        # Step 4
        _add_weekly_score(session, completion.user_id, completion.final_score, now)

    logger.info(
        "Session %d completed: user=%d +%d pts (streak %d, %d/%d correct)",
        completion.session_id, completion.user_id, completion.final_score,
        completion.best_streak, completion.correct_answers, completion.total_questions,
    )
    return CompletionResult(
        session_id=completion.session_id,
        user_id=completion.user_id,
        credited_points=completion.final_score,
    )


# ---------------------------------------------------------------------------
# Per-response scoring
# ---------------------------------------------------------------------------
def record_response(
    engine: Engine,
    submission: ResponseSubmission,
    *,
    now: datetime | None = None,
) -> ResponseResult:
    """Validate, score and store one answer.

    The running streak continues from the player's previous answer in the
    same session.  Re-submitting an already answered question returns the
    stored result unchanged.  User totals are untouched here; they move
    only in :func:`complete_session`.

    Raises
    ------
    ValueError
        Malformed wallet, or the answer arrived outside the question window.
    SessionNotFoundError
        Unknown session id.
    InvalidTransitionError
        The session is no longer active.
    """
    timing = validate_timing(submission.started_at, submission.ended_at)
    if not timing.is_valid:
        raise ValueError(
            f"Answer outside the question window ({timing.elapsed_ms} ms elapsed)"
        )

    now = now or datetime.now(UTC)
    with get_session(engine) as session:
        game = session.get(GameSession, submission.session_id)
        if game is None:
            raise SessionNotFoundError(f"Session {submission.session_id} not found")
        if game.status != SessionStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Session {submission.session_id} is {game.status}; answers are closed"
            )

        user = get_or_create_user(session, submission.wallet_address)

        existing = session.scalar(
            select(PlayerResponse).where(
                PlayerResponse.session_id == submission.session_id,
                PlayerResponse.user_id == user.id,
                PlayerResponse.question_id == submission.question_id,
            )
        )
        if existing is not None:
            return ResponseResult(
                response_id=existing.id,
                user_id=user.id,
                session_id=submission.session_id,
                points=existing.points_earned or 0,
                max_points=existing.potential_points or 0,
                streak=existing.streak_count or 0,
                time_remaining=timing.time_remaining,
                duplicate=True,
            )

        previous_streak = session.scalar(
            select(PlayerResponse.streak_count)
            .where(
                PlayerResponse.session_id == submission.session_id,
                PlayerResponse.user_id == user.id,
            )
            .order_by(PlayerResponse.id.desc())
            .limit(1)
        ) or 0

        score = calculate_score(timing.time_remaining, submission.is_correct, previous_streak)
        response = PlayerResponse(
            user_id=user.id,
            session_id=submission.session_id,
            question_id=submission.question_id,
            category=canonicalize_category(submission.category),
            is_correct=submission.is_correct,
            response_time_ms=timing.elapsed_ms,
            streak_count=score.streak,
            points_earned=score.points,
            potential_points=score.max_points,
            answered_at=now,
        )
        session.add(response)
        session.flush()

        return ResponseResult(
            response_id=response.id,
            user_id=user.id,
            session_id=submission.session_id,
            points=score.points,
            max_points=score.max_points,
            streak=score.streak,
            time_remaining=timing.time_remaining,
        )


# ---------------------------------------------------------------------------
# Read side — leaderboards & player stats
# ---------------------------------------------------------------------------
def get_leaderboard(engine: Engine, limit: int = 10) -> list[dict]:
    """Top players by lifetime points."""
    with get_session(engine) as session:
        total = session.scalar(select(func.count(User.id))) or 0
        achievement_counts = (
            select(Achievement.user_id, func.count(Achievement.id).label("n"))
            .group_by(Achievement.user_id)
            .subquery()
        )
        rows = session.execute(
            select(User, func.coalesce(achievement_counts.c.n, 0))
            .outerjoin(achievement_counts, achievement_counts.c.user_id == User.id)
            .order_by(User.total_points.desc(), User.id.asc())
            .limit(limit)
        ).all()

        return [
            {
                "rank": rank,
                "user_id": user.id,
                "wallet_address": user.wallet_address,
                "total_points": user.total_points,
                "games_played": user.games_played,
                "best_streak": user.best_streak,
                "achievements": n_achievements,
                "percentile": round((total - rank) / total * 100) if total else 0,
            }
            for rank, (user, n_achievements) in enumerate(rows, start=1)
        ]


def get_weekly_leaderboard(
    engine: Engine,
    *,
    week: int | None = None,
    year: int | None = None,
    limit: int = 10,
) -> list[dict]:
    """Top players for one week (defaults to the current week)."""
    if week is None or year is None:
        week, year = week_of_year()
    with get_session(engine) as session:
        rows = session.execute(
            select(User.id, User.wallet_address, WeeklyScore.score)
            .join(WeeklyScore, WeeklyScore.user_id == User.id)
            .where(WeeklyScore.week == week, WeeklyScore.year == year)
            .order_by(WeeklyScore.score.desc(), User.id.asc())
            .limit(limit)
        ).all()
    return [
        {
            "rank": rank,
            "user_id": user_id,
            "wallet_address": wallet,
            "score": score,
            "week": week,
            "year": year,
        }
        for rank, (user_id, wallet, score) in enumerate(rows, start=1)
    ]


def get_player_stats(engine: Engine, user_id: int, *, now: datetime | None = None) -> dict:
    """Lifetime and current-week numbers for one player.

    Raises
    ------
    PlayerNotFoundError
        If the user does not exist.
    """
    week, year = week_of_year(now)
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise PlayerNotFoundError(f"User {user_id} not found")

        weekly = session.scalar(
            select(WeeklyScore.score).where(
                WeeklyScore.user_id == user_id,
                WeeklyScore.week == week,
                WeeklyScore.year == year,
            )
        ) or 0
        ahead = session.scalar(
            select(func.count(User.id)).where(User.total_points > user.total_points)
        ) or 0

        return {
            "user_id": user.id,
            "wallet_address": user.wallet_address,
            "total_points": user.total_points,
            "weekly_points": weekly,
            "games_played": user.games_played,
            "best_streak": user.best_streak,
            "rank": ahead + 1,
            "last_played_at": user.last_played_at.isoformat() if user.last_played_at else None,
        }
