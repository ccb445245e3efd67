"""
tests/test_rules.py — Unit Tests for the Achievement Rule Engine
================================================================

Pure-function tests: every context is built by hand, no database.
"""

from __future__ import annotations

from datetime import date, timedelta

from triviabox.config import TriviaConfig
from triviabox.engine.registry import AchievementType as A
from triviabox.engine.rules import (
    ResponseSnapshot,
    RuleContext,
    RuleThresholds,
    consecutive_days,
    evaluate_response,
    evaluate_session,
    matched_types,
)

TODAY = date(2026, 10, 18)


def _ctx(**kwargs) -> RuleContext:
    return RuleContext(user_id=1, session_id=1, today=TODAY, **kwargs)


def _round(correct: int, total: int, streak: int = 0) -> tuple[ResponseSnapshot, ...]:
    return tuple(
        ResponseSnapshot("science", is_correct=i < correct, streak_count=streak)
        for i in range(total)
    )


# ---------------------------------------------------------------------------
# Streak tiers
# ---------------------------------------------------------------------------
class TestStreakTiers:
    def test_streak_five_awards_both_lower_tiers(self):
        types = matched_types(evaluate_response(_ctx(streak_count=5, is_correct=True)))
        assert {A.STREAK_3, A.STREAK_5} <= types
        assert A.STREAK_MASTER not in types

    def test_streak_ten_awards_streak_master(self):
        matches = evaluate_response(_ctx(streak_count=10, is_correct=True))
        master = [m for m in matches if m.achievement_type is A.STREAK_MASTER]
        assert master and master[0].streak_milestone == 10

    def test_streak_two_awards_nothing(self):
        assert not matched_types(evaluate_response(_ctx(streak_count=2)))

    def test_session_uses_best_streak_of_its_responses(self):
        ctx = _ctx(session_responses=_round(3, 4, streak=3), correct_answers=3)
        assert A.STREAK_3 in matched_types(evaluate_session(ctx))


# ---------------------------------------------------------------------------
# Speed
# ---------------------------------------------------------------------------
class TestSpeedDemon:
    def test_fast_correct_answer(self):
        matches = evaluate_response(_ctx(is_correct=True, response_time_ms=1500))
        speed = [m for m in matches if m.achievement_type is A.SPEED_DEMON]
        assert speed and speed[0].fastest_response == 1500

    def test_threshold_is_exclusive(self):
        ctx = _ctx(is_correct=True, response_time_ms=2000)
        assert A.SPEED_DEMON not in matched_types(evaluate_response(ctx))

    def test_fast_wrong_answer(self):
        ctx = _ctx(is_correct=False, response_time_ms=500)
        assert A.SPEED_DEMON not in matched_types(evaluate_response(ctx))

    def test_quick_thinker_at_count(self):
        assert A.QUICK_THINKER in matched_types(evaluate_response(_ctx(quick_correct_count=25)))
        assert A.QUICK_THINKER not in matched_types(evaluate_response(_ctx(quick_correct_count=24)))


# ---------------------------------------------------------------------------
# Category mastery & collection
# ---------------------------------------------------------------------------
class TestCategoryRules:
    def test_mastery_at_threshold(self):
        matches = evaluate_response(_ctx(category_correct_counts={"science": 50}))
        mastery = [m for m in matches if m.achievement_type is A.SCIENCE_MASTER]
        assert mastery and mastery[0].score == 50

    def test_mastery_below_threshold(self):
        ctx = _ctx(category_correct_counts={"science": 49})
        assert A.SCIENCE_MASTER not in matched_types(evaluate_response(ctx))

    def test_mastery_alias_category(self):
        ctx = _ctx(category_correct_counts={"pop_culture": 61})
        assert A.POPCULTURE_MASTER in matched_types(evaluate_response(ctx))

    def test_category_without_mastery_type_is_skipped(self):
        assert not matched_types(evaluate_response(_ctx(category_correct_counts={"art": 80})))

    def test_custom_mastery_threshold(self):
        th = RuleThresholds(mastery=5)
        ctx = _ctx(category_correct_counts={"history": 5})
        assert A.HISTORY_MASTER in matched_types(evaluate_response(ctx, th))

    def test_collector_needs_eleven_categories(self):
        cats = frozenset(f"cat{i}" for i in range(11))
        matches = evaluate_response(_ctx(correct_categories=cats))
        collector = [m for m in matches if m.achievement_type is A.CATEGORY_COLLECTOR]
        assert collector and collector[0].score == 11
        fewer = _ctx(correct_categories=frozenset(list(cats)[:10]))
        assert A.CATEGORY_COLLECTOR not in matched_types(evaluate_response(fewer))


# ---------------------------------------------------------------------------
# Daily streak
# ---------------------------------------------------------------------------
class TestDailyStreak:
    def test_consecutive_days_helper(self):
        assert consecutive_days([]) == 0
        assert consecutive_days([TODAY]) == 1
        days = [TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=3)]
        assert consecutive_days(days) == 2

    def test_seven_days_ending_today(self):
        days = tuple(TODAY - timedelta(days=i) for i in range(7))
        assert A.DAILY_STREAK_7 in matched_types(evaluate_response(_ctx(activity_days=days)))

    def test_gap_breaks_the_run(self):
        days = tuple(TODAY - timedelta(days=i) for i in range(7) if i != 3)
        assert A.DAILY_STREAK_7 not in matched_types(evaluate_response(_ctx(activity_days=days)))

    def test_run_outside_trailing_window(self):
        days = tuple(TODAY - timedelta(days=i) for i in range(1, 8))
        assert A.DAILY_STREAK_7 not in matched_types(evaluate_response(_ctx(activity_days=days)))


# ---------------------------------------------------------------------------
# Session-only rules
# ---------------------------------------------------------------------------
class TestSessionRules:
    def test_perfect_round_ten_of_ten(self):
        ctx = _ctx(session_responses=_round(10, 10), correct_answers=10)
        assert A.PERFECT_ROUND in matched_types(evaluate_session(ctx))

    def test_nine_of_ten_is_not_perfect(self):
        ctx = _ctx(session_responses=_round(9, 10), correct_answers=9)
        assert A.PERFECT_ROUND not in matched_types(evaluate_session(ctx))

    def test_short_round_is_not_perfect(self):
        ctx = _ctx(session_responses=_round(9, 9), correct_answers=9)
        assert A.PERFECT_ROUND not in matched_types(evaluate_session(ctx))

    def test_perfect_round_not_checked_per_response(self):
        ctx = _ctx(session_responses=_round(10, 10))
        assert A.PERFECT_ROUND not in matched_types(evaluate_response(ctx))

    def test_first_win(self):
        assert A.FIRST_WIN in matched_types(evaluate_session(_ctx(correct_answers=1)))
        assert A.FIRST_WIN not in matched_types(evaluate_session(_ctx(correct_answers=0)))

    def test_marathon(self):
        assert A.MARATHON_PLAYER in matched_types(evaluate_session(_ctx(games_played=50)))
        assert A.MARATHON_PLAYER not in matched_types(evaluate_session(_ctx(games_played=49)))


def test_thresholds_from_config():
    th = RuleThresholds.from_config(TriviaConfig(mastery_threshold=20, speed_threshold_ms=900))
    assert th.mastery == 20
    assert th.speed_ms == 900
    assert th.perfect_round_min == 10
