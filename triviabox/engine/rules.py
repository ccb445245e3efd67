"""
triviabox.engine.rules — Achievement Rule Engine
================================================

Handler-registry implementation of the achievement predicates.  Each
:class:`AchievementType` with a gameplay trigger maps to a pure handler
that receives a :class:`RuleContext` and the active
:class:`RuleThresholds` and returns a :class:`RuleMatch` (or ``None``).

Two registries exist because rules fire at two points:

* ``RESPONSE_RULES`` — after a single answer is recorded;
* ``SESSION_RULES`` — once, after a session completes.

Category mastery yields a dynamic type per category and is evaluated by
:func:`_check_category_mastery` at both points.

This module is pure calculation — no database I/O.  The history a
context carries (category counts, activity days …) is loaded by
:mod:`triviabox.services.achievement_service`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from triviabox.engine.registry import AchievementType, mastery_type_for

if TYPE_CHECKING:
    from triviabox.config import TriviaConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RuleThresholds:
    """Numeric knobs for every rule; defaults mirror ``config.yaml``."""

    streak_tiers: tuple[tuple[AchievementType, int], ...] = (
        (AchievementType.STREAK_3, 3),
        (AchievementType.STREAK_5, 5),
        (AchievementType.STREAK_MASTER, 10),
    )
    speed_ms: int = 2000
    mastery: int = 50
    perfect_round_min: int = 10
    collector_min: int = 11
    daily_streak_days: int = 7
    quick_answer_ms: int = 5000
    quick_thinker_count: int = 25
    marathon_games: int = 50

    @classmethod
    def from_config(cls, cfg: TriviaConfig) -> RuleThresholds:
        return cls(
            speed_ms=cfg.speed_threshold_ms,
            mastery=cfg.mastery_threshold,
            perfect_round_min=cfg.perfect_round_min_responses,
            collector_min=cfg.collector_min_categories,
            daily_streak_days=cfg.daily_streak_days,
            quick_answer_ms=cfg.quick_answer_ms,
            quick_thinker_count=cfg.quick_thinker_count,
            marathon_games=cfg.marathon_games,
        )


@dataclass(frozen=True, slots=True)
class ResponseSnapshot:
    """One answer within a session, as seen by session-level rules."""

    category: str
    is_correct: bool
    streak_count: int = 0
    response_time_ms: int = 0


@dataclass(frozen=True, slots=True)
class RuleContext:
    """Snapshot of a player's state passed to every rule handler.

    Parameters
    ----------
    user_id, session_id : The player and the session being evaluated.
    today : Calendar date (UTC) the evaluation runs for.
    category, streak_count, response_time_ms, is_correct : The answer
        being evaluated (response-level rules only).
    category_correct_counts : All-time correct answers per canonical
        category, for the categories relevant to this evaluation.
    correct_categories : Distinct categories with at least one correct
        answer, all time.
    activity_days : Calendar days on which the player answered anything.
    quick_correct_count : All-time correct answers under the quick
        threshold.
    games_played : Completed sessions, after this completion.
    correct_answers : Correct answers reported by the completion.
    session_responses : Every response of the session (session-level
        rules only).
    """

    user_id: int
    session_id: int
    today: date
    category: str | None = None
    streak_count: int = 0
    response_time_ms: int | None = None
    is_correct: bool = False
    category_correct_counts: dict[str, int] = field(default_factory=dict)
    correct_categories: frozenset[str] = frozenset()
    activity_days: tuple[date, ...] = ()
    quick_correct_count: int = 0
    games_played: int = 0
    correct_answers: int = 0
    session_responses: tuple[ResponseSnapshot, ...] = ()


@dataclass(frozen=True, slots=True)
class RuleMatch:
    """A satisfied rule and the progress values to record with it."""

    achievement_type: AchievementType
    score: int
    streak_milestone: int | None = None
    fastest_response: int | None = None


Handler = Callable[[RuleContext, RuleThresholds], RuleMatch | None]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def consecutive_days(days: Iterable[date]) -> int:
    """Longest run of calendar days each exactly one day apart.

    Days are walked newest first; a gap of more than one day resets the
    running count to 1.
    """
    ordered = sorted(set(days), reverse=True)
    if not ordered:
        return 0
    best = current = 1
    for newer, older in zip(ordered, ordered[1:]):
        gap = (newer - older).days
        if gap == 1:
            current += 1
            best = max(best, current)
        elif gap > 1:
            current = 1
    return best


def _streak_tier_matches(streak: int, th: RuleThresholds) -> list[RuleMatch]:
    return [
        RuleMatch(tier, score=streak, streak_milestone=streak)
        for tier, needed in th.streak_tiers
        if streak >= needed
    ]


# ---------------------------------------------------------------------------
# Rule handlers — pure functions (ctx, thresholds) → RuleMatch | None
# ---------------------------------------------------------------------------
def _check_speed_demon(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    """Correct answer faster than ``speed_ms``."""
    if not ctx.is_correct or ctx.response_time_ms is None:
        return None
    if ctx.response_time_ms >= th.speed_ms:
        return None
    return RuleMatch(
        AchievementType.SPEED_DEMON, score=1, fastest_response=ctx.response_time_ms
    )


def _check_quick_thinker(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    if ctx.quick_correct_count < th.quick_thinker_count:
        return None
    return RuleMatch(AchievementType.QUICK_THINKER, score=ctx.quick_correct_count)


def _check_category_collector(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    """Correct answers in at least ``collector_min`` distinct categories."""
    distinct = len(ctx.correct_categories)
    if distinct < th.collector_min:
        return None
    return RuleMatch(AchievementType.CATEGORY_COLLECTOR, score=distinct)


def _check_daily_streak(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    """Activity on ``daily_streak_days`` consecutive days inside the trailing window."""
    window_start = ctx.today - timedelta(days=th.daily_streak_days - 1)
    recent = [d for d in ctx.activity_days if window_start <= d <= ctx.today]
    run = consecutive_days(recent)
    if run < th.daily_streak_days:
        return None
    return RuleMatch(AchievementType.DAILY_STREAK_7, score=run)


def _check_perfect_round(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    """At least ``perfect_round_min`` responses in the session, all correct."""
    responses = ctx.session_responses
    if len(responses) < th.perfect_round_min:
        return None
    if not all(r.is_correct for r in responses):
        return None
    return RuleMatch(AchievementType.PERFECT_ROUND, score=1)


def _check_first_win(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    if ctx.correct_answers < 1:
        return None
    return RuleMatch(AchievementType.FIRST_WIN, score=1)


def _check_marathon(ctx: RuleContext, th: RuleThresholds) -> RuleMatch | None:
    if ctx.games_played < th.marathon_games:
        return None
    return RuleMatch(AchievementType.MARATHON_PLAYER, score=ctx.games_played)


def _check_category_mastery(ctx: RuleContext, th: RuleThresholds) -> list[RuleMatch]:
    """``<category>_master`` for every category at or above ``mastery``."""
    matches: list[RuleMatch] = []
    for category, count in sorted(ctx.category_correct_counts.items()):
        if count < th.mastery:
            continue
        mastery_type = mastery_type_for(category)
        if mastery_type is None:
            logger.debug("No mastery achievement registered for %r", category)
            continue
        matches.append(RuleMatch(mastery_type, score=count))
    return matches


# ---------------------------------------------------------------------------
# Handler registries
# ---------------------------------------------------------------------------
RESPONSE_RULES: dict[AchievementType, Handler] = {
    AchievementType.SPEED_DEMON: _check_speed_demon,
    AchievementType.QUICK_THINKER: _check_quick_thinker,
    AchievementType.CATEGORY_COLLECTOR: _check_category_collector,
    AchievementType.DAILY_STREAK_7: _check_daily_streak,
}

SESSION_RULES: dict[AchievementType, Handler] = {
    AchievementType.PERFECT_ROUND: _check_perfect_round,
    AchievementType.FIRST_WIN: _check_first_win,
    AchievementType.MARATHON_PLAYER: _check_marathon,
    AchievementType.CATEGORY_COLLECTOR: _check_category_collector,
    AchievementType.DAILY_STREAK_7: _check_daily_streak,
}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def _run(
    registry: dict[AchievementType, Handler],
    ctx: RuleContext,
    th: RuleThresholds,
) -> list[RuleMatch]:
    matches: list[RuleMatch] = []
    for handler in registry.values():
        match = handler(ctx, th)
        if match is not None:
            matches.append(match)
    return matches


def evaluate_response(
    ctx: RuleContext, thresholds: RuleThresholds | None = None
) -> list[RuleMatch]:
    """Rules satisfied by the single answer described by *ctx*."""
    th = thresholds or RuleThresholds()
    matches = _streak_tier_matches(ctx.streak_count, th)
    matches.extend(_run(RESPONSE_RULES, ctx, th))
    matches.extend(_check_category_mastery(ctx, th))
    return matches


def evaluate_session(
    ctx: RuleContext, thresholds: RuleThresholds | None = None
) -> list[RuleMatch]:
    """Rules satisfied by the completed session described by *ctx*."""
    th = thresholds or RuleThresholds()
    best_streak = max((r.streak_count for r in ctx.session_responses), default=0)
    matches = _streak_tier_matches(max(best_streak, ctx.streak_count), th)
    matches.extend(_run(SESSION_RULES, ctx, th))
    matches.extend(_check_category_mastery(ctx, th))
    return matches


def matched_types(matches: Iterable[RuleMatch]) -> set[AchievementType]:
    return {m.achievement_type for m in matches}
