"""
triviabox.services.achievement_recorder — Duplicate-Proof Achievement Writes
============================================================================

``record()`` is the only hot-path writer of the ``achievements`` table.
For one (user, achievement type) it:

* inserts a row if none exists (case-insensitive, alias-aware lookup);
* raises the stored score if the new one is higher;
* otherwise leaves the row untouched.

The check-then-insert sequence is guarded twice:

1. a lock striped by user id serializes evaluations inside this process;
2. the ``(user_id, type_key)`` unique constraint catches a racing insert
   from another process — the loser rolls back and retries, finding the
   winner's row on the second pass.

Creates and score increases are published to the
:class:`~triviabox.services.notification_service.UnlockChannel`.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triviabox.constants import week_of_year
from triviabox.database.engine import get_session
from triviabox.database.models import Achievement
from triviabox.engine.events import AchievementUnlocked
from triviabox.engine.registry import (
    AchievementType,
    canonical_key,
    display_for,
    is_verbatim,
    resolve_type,
)
from triviabox.services.notification_service import UnlockChannel

logger = logging.getLogger(__name__)

MAX_INSERT_ATTEMPTS = 3
LOCK_STRIPES = 64


class RecordOutcome(enum.StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class RecordResult:
    outcome: RecordOutcome
    achievement_type: AchievementType
    achievement_id: int
    score: int


def pick_canonical_row(rows: list[Achievement]) -> Achievement:
    """Choose the row that represents a group of same-type achievements.

    Highest score wins; ties prefer a row whose type string is exactly the
    registered one, then a row that already carries ``type_key``, then
    the oldest id.
    """
    return sorted(
        rows,
        key=lambda r: (
            -r.score,
            not is_verbatim(r.achievement_type),
            r.type_key is None,
            r.id,
        ),
    )[0]


class AchievementRecorder:
    """Idempotent achievement persistence.

    Parameters
    ----------
    engine:
        Database engine.
    channel:
        Where unlock events go.  ``None`` disables publishing.
    """

    def __init__(self, engine: Engine, channel: UnlockChannel | None = None) -> None:
        self.engine = engine
        self.channel = channel
        # Fixed size: users sharing a stripe only serialize with each other.
        self._locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    def _lock_for(self, user_id: int) -> threading.Lock:
        return self._locks[user_id % LOCK_STRIPES]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def record(
        self,
        user_id: int,
        achievement_type: AchievementType | str,
        score: int,
        *,
        streak_milestone: int | None = None,
        fastest_response: int | None = None,
        now: datetime | None = None,
    ) -> RecordResult:
        """Create or raise one achievement row.

        Raises
        ------
        ValueError
            If *achievement_type* is not registered or *score* is negative.
        sqlalchemy.exc.IntegrityError
            If the insert keeps colliding after ``MAX_INSERT_ATTEMPTS``.
        """
        resolved = resolve_type(achievement_type)
        if resolved is None:
            raise ValueError(f"Unregistered achievement type: {achievement_type!r}")
        if score < 0:
            raise ValueError("score must be >= 0")
        now = now or datetime.now(UTC)

        with self._lock_for(user_id):
            for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
                try:
                    result = self._record_once(
                        user_id, resolved, score, streak_milestone, fastest_response, now
                    )
                except IntegrityError:
                    if attempt == MAX_INSERT_ATTEMPTS:
                        raise
                    logger.warning(
                        "Concurrent insert of %s for user %d; retrying (%d/%d)",
                        resolved, user_id, attempt, MAX_INSERT_ATTEMPTS,
                    )
                    continue
                break

        if result.outcome is not RecordOutcome.UNCHANGED:
            self._publish(user_id, result)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _find_existing(self, session: Session, user_id: int, key: str) -> Achievement | None:
        candidates = session.scalars(
            select(Achievement).where(
                Achievement.user_id == user_id,
                or_(Achievement.type_key == key, Achievement.type_key.is_(None)),
            )
        ).all()
        matches = [
            row for row in candidates
            if (row.type_key or canonical_key(row.achievement_type)) == key
        ]
        if not matches:
            return None
        return pick_canonical_row(matches)

    def _record_once(
        self,
        user_id: int,
        achievement_type: AchievementType,
        score: int,
        streak_milestone: int | None,
        fastest_response: int | None,
        now: datetime,
    ) -> RecordResult:
        key = canonical_key(achievement_type.value)

        with get_session(self.engine) as session:
            row = self._find_existing(session, user_id, key)

            if row is None:
                week, year = week_of_year(now)
                row = Achievement(
                    user_id=user_id,
                    achievement_type=achievement_type.value,
                    type_key=key,
                    score=score,
                    week_number=week,
                    year=year,
                    streak_milestone=streak_milestone,
                    fastest_response=fastest_response,
                    minted_at=now,
                )
                session.add(row)
                session.flush()   # surfaces the unique-constraint race here
                return RecordResult(RecordOutcome.CREATED, achievement_type, row.id, score)

            if row.score >= score:
                return RecordResult(
                    RecordOutcome.UNCHANGED, achievement_type, row.id, row.score
                )

            row.score = score
            if streak_milestone is not None and (row.streak_milestone or 0) < streak_milestone:
                row.streak_milestone = streak_milestone
            if fastest_response is not None and (
                row.fastest_response is None or fastest_response < row.fastest_response
            ):
                row.fastest_response = fastest_response
            return RecordResult(RecordOutcome.UPDATED, achievement_type, row.id, score)

    def _publish(self, user_id: int, result: RecordResult) -> None:
        if self.channel is None:
            return
        self.channel.publish(AchievementUnlocked(
            user_id=user_id,
            achievement_type=result.achievement_type,
            display=display_for(result.achievement_type),
            score=result.score,
            created=result.outcome is RecordOutcome.CREATED,
        ))
