"""
tests/test_scoring.py — Per-Response Scoring & Timing Validation
================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from triviabox.engine.scoring import MAX_POINTS, calculate_score, validate_timing

T0 = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


class TestCalculateScore:
    def test_incorrect_scores_zero_and_breaks_streak(self):
        result = calculate_score(12.0, False, 4)
        assert result.points == 0
        assert result.streak == 0
        assert result.max_points == MAX_POINTS

    def test_correct_without_streak(self):
        result = calculate_score(10.0, True, 0)
        assert result.points == 10
        assert result.streak == 1

    def test_streak_bonus_ten_percent_per_level(self):
        assert calculate_score(10.0, True, 3).points == 13

    def test_streak_bonus_capped_at_fifty_percent(self):
        assert calculate_score(12.0, True, 5).points == 18
        assert calculate_score(12.0, True, 12).points == 18

    def test_base_clamped_to_max_points(self):
        assert calculate_score(40.0, True, 0).points == MAX_POINTS

    def test_no_time_left_scores_zero_but_keeps_streak(self):
        result = calculate_score(0.0, True, 2)
        assert result.points == 0
        assert result.streak == 3


class TestValidateTiming:
    def test_tolerance_is_not_charged(self):
        check = validate_timing(T0, T0 + timedelta(milliseconds=400))
        assert check.is_valid
        assert check.time_remaining == 15.0

    def test_elapsed_past_tolerance_is_charged(self):
        check = validate_timing(T0, T0 + timedelta(milliseconds=2500))
        assert check.is_valid
        assert check.elapsed_ms == 2500
        assert check.time_remaining == pytest.approx(13.0)

    def test_window_edge_is_valid(self):
        check = validate_timing(T0, T0 + timedelta(milliseconds=15_500))
        assert check.is_valid
        assert check.time_remaining == 0.0

    def test_late_answer_is_invalid(self):
        assert not validate_timing(T0, T0 + timedelta(seconds=16)).is_valid

    def test_answer_before_question_is_invalid(self):
        assert not validate_timing(T0, T0 - timedelta(seconds=1)).is_valid
