"""
triviabox.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users              — Players, one row per wallet address
- game_sessions      — One row per played (or abandoned) game
- player_responses   — One row per answered question
- achievements       — Earned badges, one per (user, canonical type)
- streak_history     — Append-only log of positive-streak completions
- weekly_scores      — Additive per-week score accumulator
- security_logs      — Audit sink for rate-limit violations
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all triviabox ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SessionStatus(enum.StrEnum):
    """GameSession lifecycle.  ``completed`` and ``cancelled`` are terminal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ActivityType(enum.StrEnum):
    """Kinds of activity recorded in security_logs."""
    ANSWER = "answer"
    SESSION = "session"
    ACHIEVEMENT = "achievement"
    VIOLATION = "violation"
    SCORE_PERSISTENCE = "score_persistence"


# ---------------------------------------------------------------------------
# Users — one row per wallet
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Stored lower-case so the unique constraint is case-insensitive.
    wallet_address: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    total_points: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    games_played: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    best_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    last_played_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    responses: Mapped[list[PlayerResponse]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    achievements: Mapped[list[Achievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_users_total_points_nonneg"),
        Index("ix_users_total_points_desc", "total_points"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} wallet={self.wallet_address!r} pts={self.total_points}>"


# ---------------------------------------------------------------------------
# GameSession — one played game
# ---------------------------------------------------------------------------
class GameSession(Base):
    __tablename__ = "game_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SessionStatus.ACTIVE
    )
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    question_count: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    responses: Mapped[list[PlayerResponse]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_game_sessions_status_started", "status", "started_at"),
    )

    def __repr__(self) -> str:
        return f"<GameSession id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# PlayerResponse — one answered question
# ---------------------------------------------------------------------------
class PlayerResponse(Base):
    __tablename__ = "player_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    # Written once, by the ledger, when the response is scored.
    streak_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_earned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    potential_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    answered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="responses")
    session: Mapped[GameSession] = relationship(back_populates="responses")

    __table_args__ = (
        Index("ix_player_responses_session", "session_id", "id"),
        Index("ix_player_responses_user_category", "user_id", "category", "is_correct"),
        Index("ix_player_responses_user_time", "user_id", "answered_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerResponse id={self.id} session={self.session_id} "
            f"correct={self.is_correct}>"
        )


# ---------------------------------------------------------------------------
# Achievement — earned badges
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    achievement_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # Canonical key.  NULL only on legacy rows that predate the constraint;
    # reconciliation backfills it.
    type_key: Mapped[str | None] = mapped_column(String(50), nullable=True)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    streak_milestone: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fastest_response: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="achievements")

    __table_args__ = (
        UniqueConstraint("user_id", "type_key", name="uq_achievements_user_type_key"),
        Index("ix_achievements_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Achievement id={self.id} user={self.user_id} "
            f"type={self.achievement_type} score={self.score}>"
        )


# ---------------------------------------------------------------------------
# StreakHistory — append-only, one row per positive-streak completion
# ---------------------------------------------------------------------------
class StreakHistory(Base):
    __tablename__ = "streak_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    streak_count: Mapped[int] = mapped_column(Integer, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_streak_history_user_time", "user_id", "recorded_at"),
    )


# ---------------------------------------------------------------------------
# WeeklyScore — additive accumulator per (user, week, year)
# ---------------------------------------------------------------------------
class WeeklyScore(Base):
    __tablename__ = "weekly_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    week: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "week", "year", name="uq_weekly_scores_user_week"),
        Index("ix_weekly_scores_week_score", "year", "week", "score"),
    )

    def __repr__(self) -> str:
        return f"<WeeklyScore user={self.user_id} {self.year}-W{self.week} score={self.score}>"


# ---------------------------------------------------------------------------
# SecurityLog — durable audit sink
# ---------------------------------------------------------------------------
class SecurityLog(Base):
    __tablename__ = "security_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_security_logs_session_time", "session_id", "logged_at"),
    )
