"""
triviabox.services.rate_limiter — Fixed-Window Ingestion Rate Limiting
======================================================================

Per-action admission control for the ingestion endpoints.  Each action
has a ``(max_attempts, window_ms)`` budget (see ``config.yaml``);
counters are keyed by ``(action, activity_type[, session_id])`` and
reset once ``now - window_start >= window_ms``.

Counters live in process memory only.  They are **not** shared between
instances; running more than one API process multiplies the effective
budget.  Moving them to a shared store is a deployment concern.

Violations are always logged locally.  When the key carries a numeric
session id that exists, a ``security_logs`` row is written as well.
The audit write never raises into the caller: rate limiting fails open.
"""

from __future__ import annotations

import enum
import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from triviabox.config import DEFAULT_RATE_LIMITS, RateLimitRule
from triviabox.database.engine import get_session
from triviabox.database.models import ActivityType, GameSession, SecurityLog

logger = logging.getLogger(__name__)

MAX_TRACKED_KEYS = 10_000
# Share of the table kept when live counters have to be evicted.
EVICT_TO_RATIO = 0.9


class RateLimitAction(enum.StrEnum):
    SESSION_CREATE = "session-create"
    SCORE_SUBMIT = "score-submit"
    QUESTION_FETCH = "question-fetch"


@dataclass(slots=True)
class _Counter:
    count: int
    window_start: float
    session_id: str | None


class RateLimiter:
    """Fixed-window counters keyed by action, activity type and session.

    Parameters
    ----------
    rules:
        Budget per action name.  Unknown actions are always admitted.
    engine:
        Optional engine for the ``security_logs`` audit sink.  Without
        one, violations are only logged.
    clock:
        Returns the current time in seconds; defaults to
        :func:`time.monotonic`.
    max_keys:
        Cap on tracked counters.  When every counter is still live, the
        ones with the oldest windows are dropped first.
    """

    def __init__(
        self,
        rules: dict[str, RateLimitRule] | None = None,
        *,
        engine: Engine | None = None,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = MAX_TRACKED_KEYS,
    ) -> None:
        self.rules = dict(rules or DEFAULT_RATE_LIMITS)
        self.engine = engine
        self._clock = clock
        self.max_keys = max_keys
        self._counters: dict[tuple[str, str, str | None], _Counter] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def admit(
        self,
        action: str,
        activity_type: str,
        session_id: int | str | None = None,
    ) -> bool:
        """Return ``True`` and count the call, or ``False`` if over budget."""
        rule = self.rules.get(action)
        if rule is None:
            return True

        sid = None if session_id is None else str(session_id)
        key = (str(action), str(activity_type), sid)
        now = self._clock()

        with self._lock:
            counter = self._counters.get(key)
            if counter is None or self._is_stale(action, rule, counter, now, sid):
                # Re-insert so the dict stays ordered by window start.
                self._counters.pop(key, None)
                if len(self._counters) >= self.max_keys:
                    self._prune(now)
                counter = _Counter(count=0, window_start=now, session_id=sid)
                self._counters[key] = counter

            if counter.count >= rule.max_attempts:
                allowed = False
            else:
                counter.count += 1
                allowed = True

        if not allowed:
            self.log_violation(
                action,
                activity_type,
                session_id,
                {
                    "type": "rate_limit_exceeded",
                    "action": str(action),
                    "limit": rule.max_attempts,
                    "window_ms": rule.window_ms,
                },
            )
        return allowed

    def retry_after(
        self,
        action: str,
        activity_type: str,
        session_id: int | str | None = None,
    ) -> int:
        """Whole seconds until the current window for this key ends (≥ 1)."""
        rule = self.rules.get(action)
        if rule is None:
            return 1
        sid = None if session_id is None else str(session_id)
        with self._lock:
            counter = self._counters.get((str(action), str(activity_type), sid))
        if counter is None:
            return 1
        remaining_s = rule.window_ms / 1000 - (self._clock() - counter.window_start)
        return max(1, math.ceil(remaining_s))

    def reset(self) -> None:
        """Forget every counter."""
        with self._lock:
            self._counters.clear()

    def _is_stale(
        self,
        action: str,
        rule: RateLimitRule,
        counter: _Counter,
        now: float,
        session_id: str | None,
    ) -> bool:
        if (now - counter.window_start) * 1000 >= rule.window_ms:
            return True
        # A new game must never inherit a previous game's usage.
        return (
            action == RateLimitAction.SCORE_SUBMIT
            and session_id is not None
            and counter.session_id != session_id
        )

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, counter in self._counters.items()
            if key[0] not in self.rules
            or (now - counter.window_start) * 1000 >= self.rules[key[0]].window_ms
        ]
        for key in expired:
            del self._counters[key]
        logger.debug("Pruned %d expired rate-limit counters", len(expired))

        if len(self._counters) < self.max_keys:
            return
        keep = int(self.max_keys * EVICT_TO_RATIO)
        evicted = len(self._counters) - keep
        for key in list(self._counters)[:evicted]:
            del self._counters[key]
        logger.warning(
            "Rate-limit table full (%d live counters); evicted %d oldest windows",
            self.max_keys, evicted,
        )

    @property
    def tracked_keys(self) -> int:
        return len(self._counters)

    # ------------------------------------------------------------------
    # Audit sink
    # ------------------------------------------------------------------
    def log_violation(
        self,
        action: str,
        activity_type: str,
        session_id: int | str | None,
        details: dict[str, Any],
    ) -> bool:
        """Record a violation.  Returns ``True`` if a durable row was written."""
        logger.warning(
            "Rate limit exceeded: action=%s activity=%s session=%s",
            action, activity_type, session_id,
        )

        numeric_id = _numeric_session_id(session_id)
        if numeric_id is None or self.engine is None:
            return False

        try:
            with get_session(self.engine) as session:
                if session.get(GameSession, numeric_id) is None:
                    return False
                session.add(SecurityLog(
                    session_id=numeric_id,
                    activity_type=ActivityType.VIOLATION,
                    details={**details, "activity_type": str(activity_type)},
                ))
            return True
        except SQLAlchemyError:
            logger.exception(
                "Failed to write rate-limit violation for session %s", numeric_id,
                extra={"task": "rate_limit_audit"},
            )
            return False


def _numeric_session_id(session_id: int | str | None) -> int | None:
    if isinstance(session_id, bool):
        return None
    if isinstance(session_id, int):
        return session_id
    if isinstance(session_id, str) and session_id.isdigit():
        return int(session_id)
    return None
