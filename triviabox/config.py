"""
triviabox.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for the service's tuning knobs: rate-limit windows,
achievement thresholds and leaderboard size.  Secrets
(``DATABASE_URL``) stay in ``.env`` and are read by
:mod:`triviabox.database.engine`.

Usage::

    from triviabox.config import load_config

    cfg = load_config()                       # reads ./config.yaml by default
    print(cfg.rate_limits["session-create"])  # RateLimitRule(3, 10000)
    print(cfg.mastery_threshold)              # 50
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Rate-limit rule — one per ingestion action
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RateLimitRule:
    """Fixed-window budget: *max_attempts* calls per *window_ms*."""

    max_attempts: int
    window_ms: int


DEFAULT_RATE_LIMITS: dict[str, RateLimitRule] = {
    "session-create": RateLimitRule(max_attempts=3, window_ms=10_000),
    "score-submit": RateLimitRule(max_attempts=20, window_ms=10_000),
    "question-fetch": RateLimitRule(max_attempts=10, window_ms=60_000),
}


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TriviaConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default, so ``TriviaConfig()`` is a usable
    configuration for tests and local development.
    """

    # Identity
    app_name: str = "triviabox"
    api_port: int = 8000

    # Rate limiting
    rate_limits: dict[str, RateLimitRule] = field(
        default_factory=lambda: dict(DEFAULT_RATE_LIMITS)
    )

    # Achievement thresholds
    mastery_threshold: int = 50
    perfect_round_min_responses: int = 10
    speed_threshold_ms: int = 2000
    collector_min_categories: int = 11
    daily_streak_days: int = 7
    quick_answer_ms: int = 5000
    quick_thinker_count: int = 25
    marathon_games: int = 50

    # Queries / jobs
    leaderboard_size: int = 10
    stale_session_minutes: int = 60


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def _parse_rate_limits(raw: dict | None) -> dict[str, RateLimitRule]:
    limits = dict(DEFAULT_RATE_LIMITS)
    for action, rule in (raw or {}).items():
        limits[action] = RateLimitRule(
            max_attempts=int(rule["max_attempts"]),
            window_ms=int(rule["window_ms"]),
        )
    return limits


def load_config(path: str | Path = "config.yaml") -> TriviaConfig:
    """Read *path* and return a :class:`TriviaConfig` instance.

    Keys missing from the YAML file fall back to the dataclass defaults;
    a rate-limit entry that is present must carry both ``max_attempts``
    and ``window_ms``.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a rate-limit entry is missing one of its keys.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = TriviaConfig()
    thresholds: dict = raw.get("achievements") or {}

    return TriviaConfig(
        app_name=raw.get("app_name", defaults.app_name),
        api_port=int(raw.get("api_port", defaults.api_port)),
        rate_limits=_parse_rate_limits(raw.get("rate_limits")),
        mastery_threshold=int(
            thresholds.get("mastery_threshold", defaults.mastery_threshold)
        ),
        perfect_round_min_responses=int(
            thresholds.get(
                "perfect_round_min_responses", defaults.perfect_round_min_responses
            )
        ),
        speed_threshold_ms=int(
            thresholds.get("speed_threshold_ms", defaults.speed_threshold_ms)
        ),
        collector_min_categories=int(
            thresholds.get(
                "collector_min_categories", defaults.collector_min_categories
            )
        ),
        daily_streak_days=int(
            thresholds.get("daily_streak_days", defaults.daily_streak_days)
        ),
        quick_answer_ms=int(thresholds.get("quick_answer_ms", defaults.quick_answer_ms)),
        quick_thinker_count=int(
            thresholds.get("quick_thinker_count", defaults.quick_thinker_count)
        ),
        marathon_games=int(thresholds.get("marathon_games", defaults.marathon_games)),
        leaderboard_size=int(raw.get("leaderboard_size", defaults.leaderboard_size)),
        stale_session_minutes=int(
            raw.get("stale_session_minutes", defaults.stale_session_minutes)
        ),
    )
