"""
triviabox.services.reconciliation_service — Achievement Repair
==============================================================

On-demand (and nightly) job that restores the achievement invariants
when history and the ``achievements`` table disagree.

How it works, per player:
    1. Group achievement rows by canonical type.  Groups with more than
       one row are merged: the highest-score row survives (preferring a
       verbatim registry type string) and the rest are deleted.
    2. Normalize each surviving row's type string to the registered one
       and backfill its ``type_key`` so the unique constraint covers it.
    3. Recount correct answers per category from ``player_responses``.
       A category at the mastery threshold with no row gets one
       (score = count); a row with a lower score is raised.
    4. Raise ``users.best_streak`` to the maximum in ``streak_history``.

With ``apply_changes=False`` nothing is written and the report shows
exactly what an applying run would do.  An applying run followed by a
second applying run yields an empty report.

Problems are reported as data; this job never raises because it found
something to fix.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from triviabox.constants import week_of_year
from triviabox.database.engine import get_session
from triviabox.database.models import Achievement, StreakHistory, User
from triviabox.engine.registry import canonical_key, mastery_type_for, resolve_type
from triviabox.services.achievement_recorder import pick_canonical_row
from triviabox.services.achievement_service import correct_counts_by_category
from triviabox.services.player_service import PlayerNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MASTERY_THRESHOLD = 50

_DIFF_KEYS = (
    "category_achievements_proposed",
    "duplicates_merged",
    "duplicates_deleted",
    "types_normalized",
)


def is_clean(report: dict) -> bool:
    """True when *report* proposes no change at all."""
    return not any(report[k] for k in _DIFF_KEYS) and report["best_streak_proposed"] is None


def repair(
    engine: Engine,
    user_id: int,
    *,
    apply_changes: bool = False,
    mastery_threshold: int = DEFAULT_MASTERY_THRESHOLD,
    now: datetime | None = None,
) -> dict:
    """Detect (and optionally fix) achievement drift for one player.

    Returns a dict with ``category_achievements_proposed``,
    ``duplicates_merged``, ``duplicates_deleted``, ``types_normalized``,
    ``best_streak_proposed`` and ``final_achievement_list``.

    Raises
    ------
    PlayerNotFoundError
        If the user does not exist.
    """
    now = now or datetime.now(UTC)

    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise PlayerNotFoundError(f"User {user_id} not found")

        rows = session.scalars(
            select(Achievement)
            .where(Achievement.user_id == user_id)
            .order_by(Achievement.id)
        ).all()

        groups: dict[str, list[Achievement]] = defaultdict(list)
        for row in rows:
            groups[canonical_key(row.achievement_type)].append(row)

        # Steps 1 + 2: duplicates and type normalization
        survivors: dict[str, Achievement] = {}
        target_types: dict[str, str] = {}
        losers: list[Achievement] = []
        merged: list[dict] = []
        deleted: list[dict] = []
        normalized: list[dict] = []

        for key, group in groups.items():
            keep = pick_canonical_row(group)
            resolved = resolve_type(key)
            target = resolved.value if resolved else keep.achievement_type
            survivors[key] = keep
            target_types[key] = target

            if len(group) > 1:
                dupes = [r for r in group if r is not keep]
                losers.extend(dupes)
                merged.append({
                    "achievement_type": target,
                    "kept_id": keep.id,
                    "kept_score": keep.score,
                    "merged_ids": [r.id for r in dupes],
                    "merged_types": [r.achievement_type for r in dupes],
                })
                deleted.extend(
                    {"id": r.id, "achievement_type": r.achievement_type, "score": r.score}
                    for r in dupes
                )

            if keep.achievement_type != target or keep.type_key != key:
                normalized.append({
                    "id": keep.id,
                    "from": keep.achievement_type,
                    "to": target,
                    "type_key": key,
                })

        # Step 3: category mastery from raw history
        proposed: list[dict] = []
        for category, count in sorted(correct_counts_by_category(session, user_id).items()):
            if count < mastery_threshold:
                continue
            mastery_type = mastery_type_for(category)
            if mastery_type is None:
                continue
            key = canonical_key(mastery_type.value)
            keep = survivors.get(key)
            if keep is None:
                proposed.append({
                    "action": "create",
                    "achievement_type": mastery_type.value,
                    "category": category,
                    "score": count,
                })
            elif keep.score < count:
                proposed.append({
                    "action": "update",
                    "achievement_type": mastery_type.value,
                    "category": category,
                    "id": keep.id,
                    "from_score": keep.score,
                    "score": count,
                })

        # Step 4: best streak from streak history
        max_streak = session.scalar(
            select(func.max(StreakHistory.streak_count)).where(
                StreakHistory.user_id == user_id
            )
        ) or 0
        best_streak_proposed = (
            {"from": user.best_streak, "to": max_streak}
            if max_streak > user.best_streak
            else None
        )

        # Projection of the table after the proposed changes
        final: dict[str, dict] = {
            key: {"achievement_type": target_types[key], "score": keep.score}
            for key, keep in survivors.items()
        }
        for change in proposed:
            final[canonical_key(change["achievement_type"])] = {
                "achievement_type": change["achievement_type"],
                "score": change["score"],
            }

        if apply_changes:
            for loser in losers:
                session.delete(loser)
            session.flush()

            for change in normalized:
                key = change["type_key"]
                survivors[key].achievement_type = change["to"]
                survivors[key].type_key = key
            session.flush()

            week, year = week_of_year(now)
            for change in proposed:
                key = canonical_key(change["achievement_type"])
                if change["action"] == "update":
                    survivors[key].score = change["score"]
                else:
                    session.add(Achievement(
                        user_id=user_id,
                        achievement_type=change["achievement_type"],
                        type_key=key,
                        score=change["score"],
                        week_number=week,
                        year=year,
                        minted_at=now,
                    ))

            if best_streak_proposed is not None:
                user.best_streak = max_streak

    report = {
        "user_id": user_id,
        "applied": apply_changes,
        "category_achievements_proposed": proposed,
        "duplicates_merged": merged,
        "duplicates_deleted": deleted,
        "types_normalized": normalized,
        "best_streak_proposed": best_streak_proposed,
        "final_achievement_list": sorted(final.values(), key=lambda a: a["achievement_type"]),
        "timestamp": now.isoformat(),
    }

    if is_clean(report):
        logger.info("Achievement repair: user %d is consistent", user_id)
    else:
        logger.warning(
            "Achievement repair (%s): user %d — %d proposed, %d merged, "
            "%d deleted, %d normalized, best_streak=%s",
            "applied" if apply_changes else "dry run", user_id,
            len(proposed), len(merged), len(deleted), len(normalized),
            best_streak_proposed,
        )
    return report


def repair_all(
    engine: Engine,
    *,
    apply_changes: bool = False,
    mastery_threshold: int = DEFAULT_MASTERY_THRESHOLD,
) -> dict:
    """Run :func:`repair` for every player.

    Returns ``{"checked": N, "repaired": M, "reports": [...]}`` where
    ``reports`` holds only the players with something to fix.
    """
    with get_session(engine) as session:
        user_ids = session.scalars(select(User.id).order_by(User.id)).all()

    reports = [
        report
        for report in (
            repair(
                engine, uid,
                apply_changes=apply_changes,
                mastery_threshold=mastery_threshold,
            )
            for uid in user_ids
        )
        if not is_clean(report)
    ]
    logger.info(
        "Achievement repair sweep: %d players checked, %d with drift",
        len(user_ids), len(reports),
    )
    return {
        "checked": len(user_ids),
        "repaired": len(reports),
        "reports": reports,
        "timestamp": datetime.now(UTC).isoformat(),
    }
