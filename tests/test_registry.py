"""
tests/test_registry.py — Achievement Types, Aliases & Week Formula
==================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from triviabox.constants import canonicalize_category, ensure_utc, week_of_year
from triviabox.engine.registry import (
    ACHIEVEMENT_DISPLAY,
    MASTERY_TYPES,
    AchievementType,
    canonical_key,
    display_for,
    is_verbatim,
    mastery_type_for,
    resolve_type,
)


# ---------------------------------------------------------------------------
# Week formula
# ---------------------------------------------------------------------------
class TestWeekOfYear:
    # 2026-01-01 is a Thursday, so the first partial week runs Thu–Sat.
    def test_first_day_is_week_one(self):
        assert week_of_year(datetime(2026, 1, 1, tzinfo=UTC)) == (1, 2026)

    def test_saturday_closes_week_one(self):
        assert week_of_year(datetime(2026, 1, 3, 23, 59, tzinfo=UTC)) == (1, 2026)

    def test_sunday_opens_week_two(self):
        assert week_of_year(datetime(2026, 1, 4, tzinfo=UTC)) == (2, 2026)

    def test_last_day_of_year(self):
        assert week_of_year(datetime(2026, 12, 31, tzinfo=UTC)) == (53, 2026)

    def test_naive_datetime_treated_as_utc(self):
        naive = datetime(2026, 1, 4, 0, 30)
        assert week_of_year(naive) == week_of_year(naive.replace(tzinfo=UTC))
        assert ensure_utc(naive).tzinfo is UTC


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
class TestCanonicalizeCategory:
    @pytest.mark.parametrize("raw, expected", [
        ("Pop Culture", "popculture"),
        ("pop_culture", "popculture"),
        ("popculture", "popculture"),
        ("General Knowledge", "general"),
        ("TECH", "technology"),
        ("  Science ", "science"),
        ("Board Games", "board_games"),
    ])
    def test_aliases(self, raw, expected):
        assert canonicalize_category(raw) == expected


# ---------------------------------------------------------------------------
# Achievement registry
# ---------------------------------------------------------------------------
class TestRegistry:
    def test_every_type_has_display_metadata(self):
        assert set(ACHIEVEMENT_DISPLAY) == set(AchievementType)

    def test_mastery_types_are_lower_case(self):
        assert AchievementType.SCIENCE_MASTER in MASTERY_TYPES
        assert all(t.value == t.value.lower() for t in MASTERY_TYPES)
        assert AchievementType.STREAK_MASTER not in MASTERY_TYPES

    @pytest.mark.parametrize("raw, expected", [
        ("science_master", AchievementType.SCIENCE_MASTER),
        ("SCIENCE_MASTER", AchievementType.SCIENCE_MASTER),
        ("Science_Master", AchievementType.SCIENCE_MASTER),
        ("TECH_GURU", AchievementType.TECHNOLOGY_MASTER),
        ("pop_culture_master", AchievementType.POPCULTURE_MASTER),
        ("PERFECT_GAME", AchievementType.PERFECT_ROUND),
        ("daily_player", AchievementType.DAILY_STREAK_7),
        ("streak_3", AchievementType.STREAK_3),
    ])
    def test_resolve_type_folds_case_and_aliases(self, raw, expected):
        assert resolve_type(raw) is expected

    def test_unknown_type_resolves_to_none(self):
        assert resolve_type("art_master") is None
        assert resolve_type("LEGENDARY") is None

    def test_canonical_key_is_lower_case(self):
        assert canonical_key("STREAK_MASTER") == "streak_master"
        assert canonical_key("History_Buff") == "history_master"

    def test_is_verbatim(self):
        assert is_verbatim("STREAK_5")
        assert is_verbatim("science_master")
        assert not is_verbatim("streak_5")
        assert not is_verbatim("SCIENCE_MASTER")
        assert not is_verbatim("nonsense")

    @pytest.mark.parametrize("category, expected", [
        ("science", AchievementType.SCIENCE_MASTER),
        ("Pop Culture", AchievementType.POPCULTURE_MASTER),
        ("pop_culture", AchievementType.POPCULTURE_MASTER),
        ("tech", AchievementType.TECHNOLOGY_MASTER),
        ("general_knowledge", AchievementType.GENERAL_MASTER),
        ("art", None),
    ])
    def test_mastery_type_for(self, category, expected):
        assert mastery_type_for(category) is expected

    def test_display_for_mastery(self):
        display = display_for(AchievementType.TECHNOLOGY_MASTER)
        assert display.name == "Tech Guru"
        assert display.total == 50
        assert display.as_dict()["category"] == "MASTERY"
