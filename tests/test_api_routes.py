"""
tests/test_api_routes.py — FastAPI Route Integration Tests
==========================================================

Drives the HTTP surface with TestClient against SQLite.  Background
achievement evaluation runs inside the request cycle under TestClient,
so unlocks are visible as soon as the response returns.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from conftest import WALLET_A, WALLET_B, make_game, make_user
from triviabox.database.models import SessionStatus


def _answer(session_id: int, question_id: int, *, elapsed_ms: int = 2500,
            correct: bool = True, wallet: str = WALLET_A, category: str = "science") -> dict:
    ended = datetime.now(UTC)
    return {
        "sessionId": session_id,
        "walletAddress": wallet,
        "questionId": question_id,
        "category": category,
        "isCorrect": correct,
        "startedAt": (ended - timedelta(milliseconds=elapsed_ms)).isoformat(),
        "endedAt": ended.isoformat(),
    }


def _completion(session_id: int, wallet: str = WALLET_A, **overrides) -> dict:
    body = {
        "sessionId": session_id,
        "walletAddress": wallet,
        "finalScore": 120,
        "correctAnswers": 8,
        "totalQuestions": 10,
        "bestStreak": 4,
    }
    body.update(overrides)
    return body


# ===========================================================================
# Health
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Game sessions
# ===========================================================================
class TestGameSessions:
    def test_create_session(self, client):
        resp = client.post("/api/game/sessions", json={"category": "Pop Culture", "questionCount": 10})
        assert resp.status_code == 201
        assert resp.json()["status"] == "active"

    def test_session_create_is_rate_limited(self, client):
        for _ in range(3):
            assert client.post("/api/game/sessions", json={}).status_code == 201

        resp = client.post("/api/game/sessions", json={})

        assert resp.status_code == 429
        assert resp.json()["detail"]["error"] == "rate_limit_exceeded"
        assert int(resp.headers["Retry-After"]) >= 1

    def test_cancel_session(self, client, db_engine):
        session_id = make_game(db_engine)
        assert client.post(f"/api/game/sessions/{session_id}/cancel").json()["cancelled"] is True
        assert client.post(f"/api/game/sessions/{session_id}/cancel").json()["cancelled"] is False
        assert client.post("/api/game/sessions/999/cancel").status_code == 404


# ===========================================================================
# Answer ingestion
# ===========================================================================
class TestSubmitAnswer:
    def test_scores_answer(self, client, db_engine):
        session_id = make_game(db_engine)
        resp = client.post("/api/scores", json=_answer(session_id, 1))

        assert resp.status_code == 200
        body = resp.json()
        assert body["points"] == 13
        assert body["streak"] == 1
        assert body["duplicate"] is False

    def test_duplicate_answer(self, client, db_engine):
        session_id = make_game(db_engine)
        first = client.post("/api/scores", json=_answer(session_id, 1)).json()
        again = client.post("/api/scores", json=_answer(session_id, 1)).json()
        assert again["duplicate"] is True
        assert again["response_id"] == first["response_id"]

    def test_fast_answer_queues_unlock(self, client, db_engine):
        session_id = make_game(db_engine)
        client.post("/api/scores", json=_answer(session_id, 1, elapsed_ms=1000))

        resp = client.get("/api/achievements/notifications", params={"wallet": WALLET_A})

        types = [n["achievement_type"] for n in resp.json()["notifications"]]
        assert types == ["SPEED_DEMON"]
        # Draining empties the outbox.
        again = client.get("/api/achievements/notifications", params={"wallet": WALLET_A})
        assert again.json()["notifications"] == []

    def test_rejections(self, client, db_engine):
        session_id = make_game(db_engine)
        assert client.post("/api/scores", json=_answer(999, 1)).status_code == 404
        assert client.post(
            "/api/scores", json=_answer(session_id, 1, elapsed_ms=30_000)
        ).status_code == 400
        assert client.post(
            "/api/scores", json=_answer(session_id, 1, wallet="not-a-wallet")
        ).status_code == 400

        closed = make_game(db_engine, status=SessionStatus.COMPLETED)
        assert client.post("/api/scores", json=_answer(closed, 1)).status_code == 409

    def test_score_submit_is_rate_limited_per_session(self, client, db_engine):
        session_id = make_game(db_engine)
        for q in range(20):
            assert client.post("/api/scores", json=_answer(session_id, q)).status_code == 200

        assert client.post("/api/scores", json=_answer(session_id, 99)).status_code == 429

        other = make_game(db_engine)
        assert client.post("/api/scores", json=_answer(other, 1)).status_code == 200


# ===========================================================================
# Completion
# ===========================================================================
class TestCompleteGame:
    def test_complete_credits_and_unlocks_first_win(self, client, db_engine):
        session_id = make_game(db_engine)
        client.post("/api/scores", json=_answer(session_id, 1))

        resp = client.post("/api/game/complete", json=_completion(session_id))

        assert resp.status_code == 200
        assert resp.json()["credited_points"] == 120
        stats = client.get("/api/scores/stats", params={"wallet": WALLET_A}).json()
        assert stats["total_points"] == 120
        assert stats["games_played"] == 1
        listing = client.get("/api/achievements", params={"wallet": WALLET_A}).json()
        first_win = [a for a in listing["achievements"] if a["type"] == "FIRST_WIN"][0]
        assert first_win["achieved"] is True

    def test_reported_best_streak_unlocks_streak_tiers(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        session_id = make_game(db_engine)

        client.post("/api/game/complete", json=_completion(session_id, bestStreak=5))

        listing = client.get("/api/achievements", params={"wallet": WALLET_A}).json()
        achieved = {a["type"] for a in listing["achievements"] if a["achieved"]}
        assert {"STREAK_3", "STREAK_5"} <= achieved
        assert "STREAK_MASTER" not in achieved

    def test_retry_is_acknowledged_without_double_credit(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        session_id = make_game(db_engine)
        client.post("/api/game/complete", json=_completion(session_id))

        again = client.post("/api/game/complete", json=_completion(session_id))

        assert again.status_code == 200
        assert again.json()["already_completed"] is True
        stats = client.get("/api/scores/stats", params={"wallet": WALLET_A}).json()
        assert stats["total_points"] == 120

    def test_cancelled_session_conflicts(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        session_id = make_game(db_engine, status=SessionStatus.CANCELLED)
        assert client.post("/api/game/complete", json=_completion(session_id)).status_code == 409

    def test_unknown_and_malformed_wallets(self, client, db_engine):
        session_id = make_game(db_engine)
        assert client.post(
            "/api/game/complete", json=_completion(session_id, WALLET_B)
        ).status_code == 404
        assert client.post(
            "/api/game/complete", json=_completion(session_id, "0x123")
        ).status_code == 400

    def test_negative_score_rejected(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        session_id = make_game(db_engine)
        resp = client.post("/api/game/complete", json=_completion(session_id, finalScore=-1))
        assert resp.status_code == 422

    def test_storage_failure_returns_commit_error(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        session_id = make_game(db_engine)
        boom = OperationalError("UPDATE users", {}, Exception("connection reset"))

        with patch("triviabox.services.score_ledger.complete_session", side_effect=boom):
            resp = client.post("/api/game/complete", json=_completion(session_id))

        assert resp.status_code == 500
        assert resp.json()["detail"]["error"] == "score_commit_failed"

    def test_session_results(self, client, db_engine):
        session_id = make_game(db_engine)
        client.post("/api/scores", json=_answer(session_id, 1))
        client.post("/api/scores", json=_answer(session_id, 2, correct=False))

        summary = client.get(f"/api/game/sessions/{session_id}/results").json()

        assert summary["correct_answers"] == 1
        assert summary["total_questions"] == 2
        assert summary["category"] == "science"
        assert summary["wallet_address"] == WALLET_A
        assert client.get("/api/game/sessions/999/results").status_code == 404


# ===========================================================================
# Leaderboards & stats
# ===========================================================================
class TestLeaderboards:
    def test_leaderboard(self, client, db_engine):
        make_user(db_engine, WALLET_A, total_points=50)
        make_user(db_engine, WALLET_B, total_points=80)

        board = client.get("/api/scores/leaderboard").json()["leaderboard"]

        assert [row["wallet_address"] for row in board] == [WALLET_B, WALLET_A]

    def test_weekly_leaderboard_current_week(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        client.post("/api/game/complete", json=_completion(make_game(db_engine)))

        board = client.get("/api/scores/weekly").json()["leaderboard"]

        assert [(row["wallet_address"], row["score"]) for row in board] == [(WALLET_A, 120)]

    def test_stats_unknown_wallet(self, client):
        assert client.get("/api/scores/stats", params={"wallet": WALLET_B}).status_code == 404


# ===========================================================================
# Achievements
# ===========================================================================
class TestAchievementRoutes:
    def test_wallet_verified_is_idempotent(self, client):
        first = client.post("/api/achievements/wallet-verified", json={"walletAddress": WALLET_B})
        second = client.post("/api/achievements/wallet-verified", json={"walletAddress": WALLET_B})

        assert first.json()["outcome"] == "created"
        assert second.json()["outcome"] == "unchanged"
        listing = client.get("/api/achievements", params={"wallet": WALLET_B}).json()
        pioneer = [a for a in listing["achievements"] if a["type"] == "BLOCKCHAIN_PIONEER"][0]
        assert pioneer["achieved"] is True

    def test_wallet_verified_rejects_bad_wallet(self, client):
        resp = client.post("/api/achievements/wallet-verified", json={"walletAddress": "nope"})
        assert resp.status_code == 400

    def test_verify_is_dry_run_by_default(self, client, db_engine):
        make_user(db_engine, WALLET_A)
        resp = client.get("/api/achievements/verify", params={"wallet": WALLET_A})

        assert resp.status_code == 200
        body = resp.json()
        assert body["applied"] is False
        assert body["duplicates_merged"] == []

    def test_list_unknown_wallet(self, client):
        assert client.get("/api/achievements", params={"wallet": WALLET_B}).status_code == 404
