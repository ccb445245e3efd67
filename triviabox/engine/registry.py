"""
triviabox.engine.registry — Achievement Types & Display Registry
================================================================

Achievement types form a closed enumeration.  Each member's value is the
type string written to ``achievements.achievement_type`` and every member
has exactly one display entry in :data:`ACHIEVEMENT_DISPLAY`.

Free-form strings coming from storage or older clients (``"TECH_GURU"``,
``"Science_Master"``, ``"PERFECT_GAME"``) are resolved with
:func:`resolve_type`, which lower-cases, maps legacy aliases and looks the
result up in the enum.  :func:`canonical_key` is the storage key that
backs the ``(user_id, type_key)`` unique constraint.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from triviabox.constants import canonicalize_category, normalize_key


class AchievementType(enum.StrEnum):
    FIRST_WIN = "FIRST_WIN"
    STREAK_3 = "STREAK_3"
    STREAK_5 = "STREAK_5"
    STREAK_MASTER = "STREAK_MASTER"
    PERFECT_ROUND = "PERFECT_ROUND"
    SPEED_DEMON = "SPEED_DEMON"
    QUICK_THINKER = "QUICK_THINKER"
    DAILY_STREAK_7 = "DAILY_STREAK_7"
    CATEGORY_COLLECTOR = "CATEGORY_COLLECTOR"
    MARATHON_PLAYER = "MARATHON_PLAYER"
    BLOCKCHAIN_PIONEER = "BLOCKCHAIN_PIONEER"

    # Category mastery keys are stored lower-case.
    SCIENCE_MASTER = "science_master"
    TECHNOLOGY_MASTER = "technology_master"
    POPCULTURE_MASTER = "popculture_master"
    HISTORY_MASTER = "history_master"
    GEOGRAPHY_MASTER = "geography_master"
    SPORTS_MASTER = "sports_master"
    GAMING_MASTER = "gaming_master"
    LITERATURE_MASTER = "literature_master"
    INTERNET_MASTER = "internet_master"
    MOVIES_MASTER = "movies_master"
    MUSIC_MASTER = "music_master"
    GENERAL_MASTER = "general_master"


class AchievementIcon(enum.StrEnum):
    TROPHY = "TROPHY"
    FLAME = "FLAME"
    STAR = "STAR"
    TARGET = "TARGET"
    MEDAL = "MEDAL"


class DisplayCategory(enum.StrEnum):
    MASTERY = "MASTERY"
    STREAK = "STREAK"
    SPEED = "SPEED"
    COLLECTION = "COLLECTION"
    SPECIAL = "SPECIAL"


@dataclass(frozen=True, slots=True)
class AchievementDisplay:
    """Static presentation metadata handed to the notification collaborator."""

    name: str
    description: str
    icon: AchievementIcon
    category: DisplayCategory
    total: int

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "icon": str(self.icon),
            "category": str(self.category),
            "total": self.total,
        }


def _mastery(name: str, subject: str) -> AchievementDisplay:
    return AchievementDisplay(
        name=name,
        description=f"Answer 50 {subject} questions correctly",
        icon=AchievementIcon.MEDAL,
        category=DisplayCategory.MASTERY,
        total=50,
    )


_A = AchievementType

ACHIEVEMENT_DISPLAY: dict[AchievementType, AchievementDisplay] = {
    _A.FIRST_WIN: AchievementDisplay(
        "First Win", "Win your first game",
        AchievementIcon.TROPHY, DisplayCategory.SPECIAL, 1,
    ),
    _A.STREAK_3: AchievementDisplay(
        "On Fire", "Get a 3x streak",
        AchievementIcon.FLAME, DisplayCategory.STREAK, 3,
    ),
    _A.STREAK_5: AchievementDisplay(
        "Unstoppable", "Get a 5x streak",
        AchievementIcon.FLAME, DisplayCategory.STREAK, 5,
    ),
    _A.STREAK_MASTER: AchievementDisplay(
        "Streak Master", "Achieve a streak of 10 correct answers",
        AchievementIcon.FLAME, DisplayCategory.STREAK, 10,
    ),
    _A.PERFECT_ROUND: AchievementDisplay(
        "Perfect Game", "Answer every question correctly in a round of 10 or more",
        AchievementIcon.STAR, DisplayCategory.MASTERY, 1,
    ),
    _A.SPEED_DEMON: AchievementDisplay(
        "Speed Demon", "Answer a question correctly in under 2 seconds",
        AchievementIcon.FLAME, DisplayCategory.SPEED, 1,
    ),
    _A.QUICK_THINKER: AchievementDisplay(
        "Quick Thinker", "Answer 25 questions correctly in under 5 seconds each",
        AchievementIcon.FLAME, DisplayCategory.SPEED, 25,
    ),
    _A.DAILY_STREAK_7: AchievementDisplay(
        "Daily Player", "Play games 7 days in a row",
        AchievementIcon.TARGET, DisplayCategory.STREAK, 7,
    ),
    _A.CATEGORY_COLLECTOR: AchievementDisplay(
        "Category Collector", "Answer correctly in 11 different categories",
        AchievementIcon.STAR, DisplayCategory.COLLECTION, 11,
    ),
    _A.MARATHON_PLAYER: AchievementDisplay(
        "Marathon Player", "Play 50 trivia games",
        AchievementIcon.TARGET, DisplayCategory.COLLECTION, 50,
    ),
    _A.BLOCKCHAIN_PIONEER: AchievementDisplay(
        "Blockchain Pioneer", "Connect your web3 wallet and play your first game",
        AchievementIcon.MEDAL, DisplayCategory.SPECIAL, 1,
    ),
    _A.SCIENCE_MASTER: _mastery("Science Master", "science"),
    _A.TECHNOLOGY_MASTER: _mastery("Tech Guru", "technology"),
    _A.POPCULTURE_MASTER: _mastery("Pop Culture Expert", "pop culture"),
    _A.HISTORY_MASTER: _mastery("History Buff", "history"),
    _A.GEOGRAPHY_MASTER: _mastery("Geography Whiz", "geography"),
    _A.SPORTS_MASTER: _mastery("Sports Fanatic", "sports"),
    _A.GAMING_MASTER: _mastery("Gaming Legend", "gaming"),
    _A.LITERATURE_MASTER: _mastery("Literary Scholar", "literature"),
    _A.INTERNET_MASTER: _mastery("Internet Savvy", "internet"),
    _A.MOVIES_MASTER: _mastery("Movie Buff", "movie"),
    _A.MUSIC_MASTER: _mastery("Music Maestro", "music"),
    _A.GENERAL_MASTER: _mastery("Know-It-All", "general knowledge"),
}

# Type strings written by older clients, keyed by their normalized form.
LEGACY_ALIASES: dict[str, str] = {
    "tech_guru": "technology_master",
    "pop_culture_expert": "popculture_master",
    "pop_culture_master": "popculture_master",
    "history_buff": "history_master",
    "general_knowledge_master": "general_master",
    "perfect_game": "perfect_round",
    "daily_player": "daily_streak_7",
}

_BY_KEY: dict[str, AchievementType] = {member.value.lower(): member for member in _A}

MASTERY_TYPES: frozenset[AchievementType] = frozenset(
    member for member in _A if member.value.endswith("_master")
)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def canonical_key(type_string: str) -> str:
    """Lower-case, alias-mapped storage key for any achievement type string."""
    key = normalize_key(type_string)
    return LEGACY_ALIASES.get(key, key)


def resolve_type(type_string: str | AchievementType) -> AchievementType | None:
    """Return the enum member for *type_string*, or ``None`` if unregistered."""
    if isinstance(type_string, AchievementType):
        return type_string
    return _BY_KEY.get(canonical_key(type_string))


def is_verbatim(type_string: str) -> bool:
    """True when *type_string* is exactly a registered type string."""
    member = _BY_KEY.get(type_string.lower())
    return member is not None and member.value == type_string


def mastery_type_for(category: str) -> AchievementType | None:
    """Mastery achievement for *category*, or ``None`` if none is registered.

    The alias-mapped category is tried first, so ``"Pop Culture"`` and
    ``"pop_culture"`` both land on ``popculture_master`` even where a
    literal ``pop_culture_master`` key would also resolve.
    """
    for candidate in (canonicalize_category(category), normalize_key(category)):
        member = _BY_KEY.get(f"{candidate}_master")
        if member is not None:
            return member
    return None


def display_for(achievement_type: AchievementType) -> AchievementDisplay:
    return ACHIEVEMENT_DISPLAY[achievement_type]
