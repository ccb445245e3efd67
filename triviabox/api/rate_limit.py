"""
triviabox.api.rate_limit — HTTP glue for the ingestion rate limiter
===================================================================

Routes call :func:`enforce_rate_limit` with the action, activity type
and (where there is one) the game session id.  Over-budget requests get
HTTP 429 with a ``Retry-After`` header.

If the limiter itself blows up the request is admitted: availability of
the scoring path wins over abuse protection.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from triviabox.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def enforce_rate_limit(
    limiter: RateLimiter,
    action: str,
    activity_type: str,
    session_id: int | str | None = None,
) -> None:
    """Raise HTTP 429 when *action* is over budget for this key."""
    try:
        allowed = limiter.admit(action, activity_type, session_id)
    except Exception:
        logger.exception(
            "Rate limiter failed for %s; admitting request", action,
            extra={"task": "rate_limit"},
        )
        return

    if allowed:
        return

    retry_after = limiter.retry_after(action, activity_type, session_id)
    rule = limiter.rules[action]
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "rate_limit_exceeded",
            "message": (
                f"Rate limit exceeded: {rule.max_attempts} {action} requests"
                f" per {rule.window_ms // 1000}s."
            ),
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
