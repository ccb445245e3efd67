"""
triviabox.engine.scoring — Per-Response Score Calculation
=========================================================

Pure calculation, no DB I/O.  A question is open for
:data:`QUESTION_DURATION_S` seconds; a correct answer earns one point
per whole second left, boosted by the running streak.

Pipeline::

    (started_at, ended_at) → validate_timing → time_remaining
    (time_remaining, is_correct, streak) → calculate_score → ScoreResult
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

QUESTION_DURATION_S = 15
MAX_POINTS = 15
STREAK_BONUS_PER_LEVEL = 0.1
MAX_STREAK_BONUS = 0.5
TIME_TOLERANCE_MS = 500


@dataclass(frozen=True, slots=True)
class ScoreResult:
    points: int
    max_points: int
    streak: int


@dataclass(frozen=True, slots=True)
class TimingCheck:
    is_valid: bool
    elapsed_ms: int
    time_remaining: float


def calculate_score(time_remaining: float, is_correct: bool, streak_count: int) -> ScoreResult:
    """Points for one answer.

    Incorrect answers score 0 and break the streak.  Correct answers
    score ``clamp(round(time_remaining), 0, MAX_POINTS)`` multiplied by
    ``1 + min(streak * 0.1, 0.5)``, and extend the streak by one.
    """
    if not is_correct:
        return ScoreResult(points=0, max_points=MAX_POINTS, streak=0)

    base = min(max(round(time_remaining), 0), MAX_POINTS)
    multiplier = 1 + min(streak_count * STREAK_BONUS_PER_LEVEL, MAX_STREAK_BONUS)
    return ScoreResult(
        points=round(base * multiplier),
        max_points=MAX_POINTS,
        streak=streak_count + 1,
    )


def validate_timing(started_at: datetime, ended_at: datetime) -> TimingCheck:
    """Check that an answer arrived inside the question window.

    The first :data:`TIME_TOLERANCE_MS` of elapsed time are not charged,
    which absorbs network latency.  Answers before the question was shown
    or after the window plus tolerance are invalid.
    """
    elapsed_ms = int((ended_at - started_at).total_seconds() * 1000)
    window_ms = QUESTION_DURATION_S * 1000 + TIME_TOLERANCE_MS
    if elapsed_ms < 0 or elapsed_ms > window_ms:
        return TimingCheck(is_valid=False, elapsed_ms=elapsed_ms, time_remaining=0.0)

    charged_s = max(0, elapsed_ms - TIME_TOLERANCE_MS) / 1000
    return TimingCheck(
        is_valid=True,
        elapsed_ms=elapsed_ms,
        time_remaining=max(0.0, QUESTION_DURATION_S - charged_s),
    )
