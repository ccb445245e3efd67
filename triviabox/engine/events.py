"""
triviabox.engine.events — Gameplay & Unlock Events
==================================================

The envelopes that flow through the pipeline:

* :class:`ResponseSubmission` — one answered question, from the game
  client via ``POST /api/scores``;
* :class:`SessionCompletion` — the end-of-game summary, from
  ``POST /api/game/complete``;
* :class:`AchievementUnlocked` — emitted by the recorder on a create or
  score increase, consumed by the notification collaborator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from triviabox.engine.registry import AchievementDisplay, AchievementType

__all__ = ["AchievementUnlocked", "ResponseSubmission", "SessionCompletion"]


@dataclass(frozen=True, slots=True)
class ResponseSubmission:
    """A single answer as reported by the question collaborator.

    Correctness and category come from the question service; this core
    only validates timing and scores the answer.
    """

    session_id: int
    wallet_address: str
    question_id: int
    category: str
    is_correct: bool
    started_at: datetime
    ended_at: datetime


@dataclass(frozen=True, slots=True)
class SessionCompletion:
    """Ingestion contract for a finished game."""

    session_id: int
    user_id: int
    final_score: int
    correct_answers: int
    total_questions: int
    best_streak: int = 0

    def __post_init__(self) -> None:
        for name in ("final_score", "correct_answers", "total_questions", "best_streak"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")


@dataclass(frozen=True, slots=True)
class AchievementUnlocked:
    """Message handed to the notification collaborator."""

    user_id: int
    achievement_type: AchievementType
    display: AchievementDisplay
    score: int
    created: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "achievement_type": str(self.achievement_type),
            **self.display.as_dict(),
            "score": self.score,
            "created": self.created,
            "timestamp": self.timestamp.isoformat(),
        }
