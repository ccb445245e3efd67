"""
triviabox.services.notification_service — Achievement Unlock Channel
====================================================================

The recorder publishes :class:`AchievementUnlocked` messages here;
delivery is somebody else's job.  Two consumption styles are supported:

* **subscribers** — callables invoked synchronously on publish (a push
  gateway, a websocket fan-out …).  A subscriber that raises is logged
  and skipped; it never affects the publisher or other subscribers.
* **outbox** — a bounded per-user queue the game client drains via
  ``GET /api/achievements/notifications``.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from collections.abc import Callable

from triviabox.engine.events import AchievementUnlocked

logger = logging.getLogger(__name__)

Subscriber = Callable[[AchievementUnlocked], None]

OUTBOX_SIZE = 50


class UnlockChannel:
    """Thread-safe fan-out of unlock events."""

    def __init__(self, outbox_size: int = OUTBOX_SIZE) -> None:
        self._subscribers: list[Subscriber] = []
        self._outbox: dict[int, deque[AchievementUnlocked]] = defaultdict(
            lambda: deque(maxlen=outbox_size)
        )
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, event: AchievementUnlocked) -> None:
        with self._lock:
            self._outbox[event.user_id].append(event)
            subscribers = list(self._subscribers)

        logger.info(
            "Achievement unlocked: %s for user %d (score %d)",
            event.achievement_type, event.user_id, event.score,
        )
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Unlock subscriber %r failed for user %d",
                    callback, event.user_id,
                    extra={"task": "unlock_notify"},
                )

    def drain(self, user_id: int) -> list[AchievementUnlocked]:
        """Remove and return every pending unlock for *user_id*, oldest first."""
        with self._lock:
            pending = self._outbox.pop(user_id, None)
        return list(pending) if pending else []

    def pending_count(self, user_id: int) -> int:
        with self._lock:
            pending = self._outbox.get(user_id)
            return len(pending) if pending else 0
