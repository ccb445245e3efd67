"""
triviabox.services.achievement_service — Rule Evaluation Against History
========================================================================

Bridges the pure rule engine (:mod:`triviabox.engine.rules`) and the
database: loads a player's history into a :class:`RuleContext`, runs the
response- or session-level rules, and hands every match to the
:class:`AchievementRecorder`.

Evaluation always runs **after** the Score Ledger has committed.  The
``safe_*`` wrappers are what request handlers dispatch: they log and
swallow every failure so an achievement problem can never turn a
successful score write into an error.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from triviabox.constants import canonicalize_category, ensure_utc
from triviabox.database.engine import get_session
from triviabox.database.models import Achievement, GameSession, PlayerResponse, User
from triviabox.engine.registry import (
    ACHIEVEMENT_DISPLAY,
    MASTERY_TYPES,
    AchievementType,
    resolve_type,
)
from triviabox.engine.rules import (
    ResponseSnapshot,
    RuleContext,
    RuleMatch,
    RuleThresholds,
    consecutive_days,
    evaluate_response,
    evaluate_session,
)
from triviabox.services.achievement_recorder import (
    AchievementRecorder,
    RecordOutcome,
    RecordResult,
)

logger = logging.getLogger(__name__)

ONE_OFF_TYPES: frozenset[AchievementType] = frozenset({AchievementType.BLOCKCHAIN_PIONEER})

_STREAK_TYPES = {
    AchievementType.STREAK_3,
    AchievementType.STREAK_5,
    AchievementType.STREAK_MASTER,
}


# ---------------------------------------------------------------------------
# History loading
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class PlayerHistory:
    """All-time aggregates a rule or a progress bar might need."""

    category_counts: dict[str, int] = field(default_factory=dict)
    quick_correct_count: int = 0
    activity_days: tuple[date, ...] = ()
    games_played: int = 0
    best_streak: int = 0

    @property
    def correct_categories(self) -> frozenset[str]:
        return frozenset(c for c, n in self.category_counts.items() if n > 0)


def correct_counts_by_category(session: Session, user_id: int) -> dict[str, int]:
    """Correct answers per canonical category.

    Older rows may carry un-canonicalized category names, so the SQL
    grouping is folded once more through :func:`canonicalize_category`.
    """
    rows = session.execute(
        select(PlayerResponse.category, func.count(PlayerResponse.id))
        .where(PlayerResponse.user_id == user_id, PlayerResponse.is_correct.is_(True))
        .group_by(PlayerResponse.category)
    ).all()
    counts: Counter[str] = Counter()
    for category, n in rows:
        counts[canonicalize_category(category)] += n
    return dict(counts)


def load_history(
    session: Session,
    user_id: int,
    *,
    today: date,
    thresholds: RuleThresholds,
) -> PlayerHistory:
    since = datetime.combine(
        today - timedelta(days=thresholds.daily_streak_days - 1),
        datetime.min.time(),
        tzinfo=UTC,
    )
    answered = session.scalars(
        select(PlayerResponse.answered_at).where(
            PlayerResponse.user_id == user_id,
            PlayerResponse.answered_at >= since,
        )
    ).all()
    quick = session.scalar(
        select(func.count(PlayerResponse.id)).where(
            PlayerResponse.user_id == user_id,
            PlayerResponse.is_correct.is_(True),
            PlayerResponse.response_time_ms < thresholds.quick_answer_ms,
        )
    ) or 0
    user = session.get(User, user_id)

    return PlayerHistory(
        category_counts=correct_counts_by_category(session, user_id),
        quick_correct_count=quick,
        activity_days=tuple(sorted({ensure_utc(ts).date() for ts in answered})),
        games_played=user.games_played if user else 0,
        best_streak=user.best_streak if user else 0,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class AchievementService:
    """Evaluates rules for one response or one session and records matches."""

    def __init__(
        self,
        engine: Engine,
        recorder: AchievementRecorder,
        thresholds: RuleThresholds | None = None,
    ) -> None:
        self.engine = engine
        self.recorder = recorder
        self.thresholds = thresholds or RuleThresholds()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def evaluate_response(
        self, response_id: int, *, now: datetime | None = None
    ) -> list[RecordResult]:
        """Run response-level rules for a stored answer.

        Returns the achievements that were created or raised.

        Raises
        ------
        LookupError
            If the response does not exist.
        """
        now = now or datetime.now(UTC)
        with get_session(self.engine) as session:
            response = session.get(PlayerResponse, response_id)
            if response is None:
                raise LookupError(f"Response {response_id} not found")

            category = canonicalize_category(response.category)
            history = load_history(
                session, response.user_id, today=now.date(), thresholds=self.thresholds
            )
            ctx = RuleContext(
                user_id=response.user_id,
                session_id=response.session_id,
                today=now.date(),
                category=category,
                streak_count=response.streak_count or 0,
                response_time_ms=response.response_time_ms,
                is_correct=response.is_correct,
                category_correct_counts={category: history.category_counts.get(category, 0)},
                correct_categories=history.correct_categories,
                activity_days=history.activity_days,
                quick_correct_count=history.quick_correct_count,
                games_played=history.games_played,
            )

        return self._record(ctx.user_id, evaluate_response(ctx, self.thresholds), now)

    def evaluate_session(
        self,
        session_id: int,
        user_id: int,
        *,
        correct_answers: int | None = None,
        best_streak: int = 0,
        now: datetime | None = None,
    ) -> list[RecordResult]:
        """Run session-level rules once a session has completed.

        *best_streak* is the streak reported by the completion; the streak
        tiers use the larger of it and the stored per-answer streaks.

        Raises
        ------
        LookupError
            If the session does not exist.
        """
        now = now or datetime.now(UTC)
        with get_session(self.engine) as session:
            if session.get(GameSession, session_id) is None:
                raise LookupError(f"Session {session_id} not found")

            responses = session.scalars(
                select(PlayerResponse)
                .where(
                    PlayerResponse.session_id == session_id,
                    PlayerResponse.user_id == user_id,
                )
                .order_by(PlayerResponse.id)
            ).all()
            snapshots = tuple(
                ResponseSnapshot(
                    category=canonicalize_category(r.category),
                    is_correct=r.is_correct,
                    streak_count=r.streak_count or 0,
                    response_time_ms=r.response_time_ms,
                )
                for r in responses
            )
            history = load_history(
                session, user_id, today=now.date(), thresholds=self.thresholds
            )
            session_categories = {s.category for s in snapshots}
            if correct_answers is None:
                correct_answers = sum(1 for s in snapshots if s.is_correct)

            ctx = RuleContext(
                user_id=user_id,
                session_id=session_id,
                today=now.date(),
                streak_count=best_streak,
                category_correct_counts={
                    c: history.category_counts.get(c, 0) for c in session_categories
                },
                correct_categories=history.correct_categories,
                activity_days=history.activity_days,
                quick_correct_count=history.quick_correct_count,
                games_played=history.games_played,
                correct_answers=correct_answers,
                session_responses=snapshots,
            )

        return self._record(user_id, evaluate_session(ctx, self.thresholds), now)

    def _record(
        self, user_id: int, matches: list[RuleMatch], now: datetime
    ) -> list[RecordResult]:
        changed: list[RecordResult] = []
        for match in matches:
            result = self.recorder.record(
                user_id,
                match.achievement_type,
                match.score,
                streak_milestone=match.streak_milestone,
                fastest_response=match.fastest_response,
                now=now,
            )
            if result.outcome is not RecordOutcome.UNCHANGED:
                changed.append(result)
        return changed

    # ------------------------------------------------------------------
    # Best-effort wrappers — dispatched after the ledger commit
    # ------------------------------------------------------------------
    def safe_evaluate_response(self, response_id: int) -> list[RecordResult]:
        try:
            return self.evaluate_response(response_id)
        except Exception:
            logger.exception(
                "Achievement evaluation failed for response %d", response_id,
                extra={"task": "achievement_eval"},
            )
            return []

    def safe_evaluate_session(
        self,
        session_id: int,
        user_id: int,
        correct_answers: int | None = None,
        best_streak: int = 0,
    ) -> list[RecordResult]:
        try:
            return self.evaluate_session(
                session_id, user_id,
                correct_answers=correct_answers, best_streak=best_streak,
            )
        except Exception:
            logger.exception(
                "Achievement evaluation failed for session %d (user %d)",
                session_id, user_id,
                extra={"task": "achievement_eval"},
            )
            return []

    # ------------------------------------------------------------------
    # One-off flags
    # ------------------------------------------------------------------
    def grant_one_off(
        self, user_id: int, achievement_type: AchievementType = AchievementType.BLOCKCHAIN_PIONEER
    ) -> RecordResult:
        """Idempotently award an event-triggered flag such as the wallet bonus."""
        if achievement_type not in ONE_OFF_TYPES:
            raise ValueError(f"{achievement_type} is not a one-off achievement")
        return self.recorder.record(user_id, achievement_type, 1)

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------
    def list_for_user(self, user_id: int, *, now: datetime | None = None) -> list[dict]:
        """Every registered achievement with the player's status and progress.

        Rows whose type strings differ only by case or alias are merged
        (highest score, earliest unlock).  The list is then de-duplicated by
        display name, keeping the entry with the higher progress ratio.
        """
        now = now or datetime.now(UTC)
        with get_session(self.engine) as session:
            rows = session.scalars(
                select(Achievement).where(Achievement.user_id == user_id)
            ).all()
            history = load_history(
                session, user_id, today=now.date(), thresholds=self.thresholds
            )

            earned: dict[AchievementType, dict] = {}
            for row in rows:
                resolved = resolve_type(row.achievement_type)
                if resolved is None:
                    logger.debug(
                        "Ignoring unregistered achievement %r (row %d)",
                        row.achievement_type, row.id,
                    )
                    continue
                minted = ensure_utc(row.minted_at)
                current = earned.get(resolved)
                if current is None:
                    earned[resolved] = {"score": row.score, "minted_at": minted}
                else:
                    current["score"] = max(current["score"], row.score)
                    current["minted_at"] = min(current["minted_at"], minted)

        by_name: dict[str, dict] = {}
        for achievement_type, display in ACHIEVEMENT_DISPLAY.items():
            unlocked = earned.get(achievement_type)
            if unlocked is not None:
                progress = display.total
            else:
                progress = min(display.total, self._progress(achievement_type, history))
            entry = {
                "type": str(achievement_type),
                **display.as_dict(),
                "achieved": unlocked is not None,
                "progress": progress,
                "score": unlocked["score"] if unlocked else 0,
                "unlocked_at": unlocked["minted_at"].isoformat() if unlocked else None,
            }
            kept = by_name.get(display.name)
            if kept is None or _ratio(entry) > _ratio(kept):
                by_name[display.name] = entry
        return list(by_name.values())

    def _progress(self, achievement_type: AchievementType, history: PlayerHistory) -> int:
        if achievement_type in MASTERY_TYPES:
            category = achievement_type.value.removesuffix("_master")
            return history.category_counts.get(category, 0)
        if achievement_type in _STREAK_TYPES:
            return history.best_streak
        if achievement_type == AchievementType.QUICK_THINKER:
            return history.quick_correct_count
        if achievement_type == AchievementType.CATEGORY_COLLECTOR:
            return len(history.correct_categories)
        if achievement_type == AchievementType.MARATHON_PLAYER:
            return history.games_played
        if achievement_type == AchievementType.DAILY_STREAK_7:
            return consecutive_days(history.activity_days)
        if achievement_type == AchievementType.FIRST_WIN:
            return 1 if history.correct_categories else 0
        return 0


def _ratio(entry: dict) -> float:
    return entry["progress"] / entry["total"] if entry["total"] else 0.0
