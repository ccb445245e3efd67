"""
tests/conftest.py — Shared Test Fixtures
========================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from triviabox.database.engine import get_session
from triviabox.database.models import (
    Base,
    GameSession,
    PlayerResponse,
    SessionStatus,
    User,
)

WALLET_A = "0x" + "a" * 40
WALLET_B = "0x" + "b" * 40
WALLET_C = "0x" + "c" * 40

_sqlite_compat_registered = False


def _register_sqlite_compat():
    """Render PG JSONB as TEXT and BigInteger as INTEGER on SQLite (idempotent).

    INTEGER keeps autoincrement working for BigInteger primary keys.
    """
    global _sqlite_compat_registered
    if _sqlite_compat_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _sqlite_compat_registered = True


_register_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every triviabox table.

    StaticPool shares one connection across threads (TestClient, the
    recorder concurrency tests).  pysqlite's own transaction handling is
    switched off so SAVEPOINTs behave as on PostgreSQL.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine with a real connection pool.

    Each thread checks out its own connection, so concurrent evaluations
    race on the database the way separate API processes would.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Factories — plain functions so test modules can ``from conftest import``
# ---------------------------------------------------------------------------
def make_user(engine: Engine, wallet: str = WALLET_A, **fields) -> int:
    with get_session(engine) as session:
        user = User(
            wallet_address=wallet.lower(),
            total_points=fields.pop("total_points", 0),
            games_played=fields.pop("games_played", 0),
            best_streak=fields.pop("best_streak", 0),
            **fields,
        )
        session.add(user)
        session.flush()
        return user.id


def make_game(
    engine: Engine,
    *,
    status: str = SessionStatus.ACTIVE,
    category: str | None = None,
    started_at: datetime | None = None,
) -> int:
    with get_session(engine) as session:
        game = GameSession(
            status=status,
            category=category,
            started_at=started_at or datetime.now(UTC),
        )
        session.add(game)
        session.flush()
        return game.id


def add_response(
    engine: Engine,
    *,
    user_id: int,
    session_id: int,
    question_id: int,
    category: str = "science",
    is_correct: bool = True,
    response_time_ms: int = 3000,
    streak_count: int | None = None,
    answered_at: datetime | None = None,
) -> int:
    with get_session(engine) as session:
        response = PlayerResponse(
            user_id=user_id,
            session_id=session_id,
            question_id=question_id,
            category=category,
            is_correct=is_correct,
            response_time_ms=response_time_ms,
            streak_count=streak_count,
            points_earned=10 if is_correct else 0,
            potential_points=15,
            answered_at=answered_at or datetime.now(UTC),
        )
        session.add(response)
        session.flush()
        return response.id


def add_correct_answers(
    engine: Engine,
    user_id: int,
    category: str,
    count: int,
    *,
    answered_at: datetime | None = None,
) -> int:
    """Bulk-insert *count* correct answers in one finished session."""
    session_id = make_game(engine, status=SessionStatus.COMPLETED)
    with get_session(engine) as session:
        session.add_all(
            PlayerResponse(
                user_id=user_id,
                session_id=session_id,
                question_id=i,
                category=category,
                is_correct=True,
                response_time_ms=8000,
                streak_count=1,
                points_earned=10,
                potential_points=15,
                answered_at=answered_at or datetime.now(UTC),
            )
            for i in range(count)
        )
    return session_id


@pytest.fixture
def services(db_engine):
    """A fully wired service container on the test database."""
    from triviabox.api.deps import build_services
    from triviabox.config import TriviaConfig

    return build_services(db_engine, TriviaConfig())


@pytest.fixture
def client(services):
    """TestClient with the service container pre-installed.

    Used without a ``with`` block so the production lifespan (which
    needs DATABASE_URL) never runs.
    """
    from fastapi.testclient import TestClient

    from triviabox.api.main import app

    app.state.services = services
    yield TestClient(app, raise_server_exceptions=False)
    del app.state.services
