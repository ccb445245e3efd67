"""Initial scoring schema

Revision ID: 3f1c2a7d9e10
Revises:
Create Date: 2026-09-28 10:12:41.118203

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1c2a7d9e10'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create players, sessions, responses, achievements and the audit sink."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("wallet_address", sa.String(100), nullable=False, unique=True),
        sa.Column("total_points", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("games_played", sa.Integer, nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.Column("last_played_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("total_points >= 0", name="ck_users_total_points_nonneg"),
    )
    op.create_index("ix_users_total_points_desc", "users", ["total_points"])

    # --- game_sessions ---
    op.create_table(
        "game_sessions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("question_count", sa.Integer, nullable=False, server_default="10"),
        sa.Column(
            "started_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_game_sessions_status_started", "game_sessions", ["status", "started_at"],
    )

    # --- player_responses ---
    op.create_table(
        "player_responses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "session_id", sa.Integer,
            sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("question_id", sa.Integer, nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("is_correct", sa.Boolean, nullable=False),
        sa.Column("response_time_ms", sa.Integer, nullable=False),
        sa.Column("streak_count", sa.Integer, nullable=True),
        sa.Column("points_earned", sa.Integer, nullable=True),
        sa.Column("potential_points", sa.Integer, nullable=True),
        sa.Column(
            "answered_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_player_responses_session", "player_responses", ["session_id", "id"],
    )
    op.create_index(
        "ix_player_responses_user_category", "player_responses",
        ["user_id", "category", "is_correct"],
    )
    op.create_index(
        "ix_player_responses_user_time", "player_responses", ["user_id", "answered_at"],
    )

    # --- achievements (no uniqueness yet; see the type_key revision) ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("achievement_type", sa.String(50), nullable=False),
        sa.Column("score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("week_number", sa.Integer, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("streak_milestone", sa.Integer, nullable=True),
        sa.Column("fastest_response", sa.Integer, nullable=True),
        sa.Column(
            "minted_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_achievements_user", "achievements", ["user_id"])

    # --- streak_history ---
    op.create_table(
        "streak_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "session_id", sa.Integer,
            sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("streak_count", sa.Integer, nullable=False),
        sa.Column("points_earned", sa.Integer, nullable=False),
        sa.Column(
            "recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_streak_history_user_time", "streak_history", ["user_id", "recorded_at"],
    )

    # --- weekly_scores ---
    op.create_table(
        "weekly_scores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("week", sa.Integer, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("score", sa.BigInteger, nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "week", "year", name="uq_weekly_scores_user_week"),
    )
    op.create_index(
        "ix_weekly_scores_week_score", "weekly_scores", ["year", "week", "score"],
    )

    # --- security_logs ---
    op.create_table(
        "security_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "session_id", sa.Integer,
            sa.ForeignKey("game_sessions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("activity_type", sa.String(30), nullable=False),
        sa.Column("details", postgresql.JSONB, nullable=True),
        sa.Column(
            "logged_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_security_logs_session_time", "security_logs", ["session_id", "logged_at"],
    )


def downgrade() -> None:
    """Drop every scoring table."""
    op.drop_table("security_logs")
    op.drop_table("weekly_scores")
    op.drop_table("streak_history")
    op.drop_table("achievements")
    op.drop_table("player_responses")
    op.drop_table("game_sessions")
    op.drop_table("users")
