"""
triviabox — Achievement & Scoring Pipeline for a Trivia Game
============================================================
Ingests gameplay events (question responses and session completions),
keeps score / streak / leaderboard state consistent, and awards
achievements when a player's history crosses a threshold.

Package layout::

    triviabox/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Week formula + category canonicalization
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── events.py      # Ingestion + unlock event dataclasses
    │   ├── registry.py    # Closed achievement enum + display registry
    │   ├── rules.py       # Pure achievement predicates
    │   └── scoring.py     # Per-response point calculation
    ├── services/
    │   ├── score_ledger.py          # Atomic session completion
    │   ├── achievement_recorder.py  # Duplicate-proof achievement writes
    │   ├── achievement_service.py   # History loading + rule evaluation
    │   ├── reconciliation_service.py # Duplicate / missing-row repair
    │   ├── rate_limiter.py          # Fixed-window admission control
    │   └── notification_service.py  # Unlock channel
    ├── api/
    │   ├── main.py        # FastAPI app
    │   └── routes/        # Game, score and achievement endpoints
    └── jobs/
        └── __main__.py    # Reconciliation + stale-session cleanup runner
"""

__version__ = "0.1.0"
