"""
triviabox.constants — Shared Constants & Helpers
================================================

Single source of truth for the week formula and category
canonicalization.  The Score Ledger, the rule engine and reconciliation
all import from here so a week number or a category key is computed
exactly one way.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, date, datetime

# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
CATEGORY_ALIASES: dict[str, str] = {
    "pop_culture": "popculture",
    "popculture": "popculture",
    "general_knowledge": "general",
    "general": "general",
    "technology": "technology",
    "tech": "technology",
    "science": "science",
    "history": "history",
    "geography": "geography",
    "sports": "sports",
    "gaming": "gaming",
    "literature": "literature",
    "internet": "internet",
    "movies": "movies",
    "music": "music",
    "art": "art",
    "random": "random",
}

_WHITESPACE = re.compile(r"\s+")


def normalize_key(value: str) -> str:
    """Lower-case *value* and collapse whitespace runs to ``_``."""
    return _WHITESPACE.sub("_", value.strip().lower())


def canonicalize_category(category: str) -> str:
    """Resolve a free-form category name to its stable storage key.

    ``"Pop Culture"`` → ``"popculture"``; unknown names are returned
    normalized but otherwise unchanged.
    """
    key = normalize_key(category)
    return CATEGORY_ALIASES.get(key, key)


# ---------------------------------------------------------------------------
# Week formula — THE single canonical implementation
# ---------------------------------------------------------------------------
def ensure_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite hands them back without tzinfo)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def week_of_year(moment: datetime | None = None) -> tuple[int, int]:
    """Return ``(week, year)`` for *moment* (defaults to now, UTC).

    Uses::

        week = ceil((day_of_year + start_of_year_weekday) / 7)

    where ``day_of_year`` is 1-based and ``start_of_year_weekday`` counts
    Sunday as 0.
    """
    moment = ensure_utc(moment or datetime.now(UTC))
    day_of_year = moment.timetuple().tm_yday
    start_weekday = (date(moment.year, 1, 1).weekday() + 1) % 7
    return math.ceil((day_of_year + start_weekday) / 7), moment.year
