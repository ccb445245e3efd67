"""
triviabox.jobs.__main__ — Entry point for ``python -m triviabox.jobs``
======================================================================

Maintenance jobs for the scoring pipeline:

``reconcile``
    Repair achievement drift for one player (``--wallet``) or everyone.
    Dry run unless ``--apply`` is given.
``cleanup``
    Cancel sessions left ``active`` past ``--older-than-minutes``.

With ``--every SECONDS`` the job repeats on that interval until
interrupted; otherwise it runs once and exits.

Run with::

    python -m triviabox.jobs reconcile --apply
    python -m triviabox.jobs cleanup --every 600
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from triviabox.config import TriviaConfig, load_config
from triviabox.database.engine import create_db_engine, get_session, run_db
from triviabox.services import reconciliation_service, score_ledger
from triviabox.services.player_service import require_user

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("triviabox")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="python -m triviabox.jobs")
    parser.add_argument(
        "--every", type=int, default=None, metavar="SECONDS",
        help="repeat the job on this interval instead of running once",
    )
    sub = parser.add_subparsers(dest="job", required=True)

    reconcile = sub.add_parser("reconcile", help="repair achievement drift")
    reconcile.add_argument("--wallet", default=None, help="limit to one player")
    reconcile.add_argument("--apply", action="store_true", help="write the fixes")

    cleanup = sub.add_parser("cleanup", help="cancel abandoned sessions")
    cleanup.add_argument(
        "--older-than-minutes", type=int, default=None,
        help="defaults to stale_session_minutes from config.yaml",
    )
    return parser.parse_args(argv)


def _load_config() -> TriviaConfig:
    path = Path(os.getenv("TRIVIABOX_CONFIG", "config.yaml"))
    if path.exists():
        return load_config(path)
    logger.warning("No config file at %s; using built-in defaults", path)
    return TriviaConfig()


def run_job(args: argparse.Namespace, engine, cfg: TriviaConfig) -> dict:
    """Execute one pass of the selected job and return its report."""
    if args.job == "reconcile":
        if args.wallet:
            with get_session(engine) as session:
                user_id = require_user(session, args.wallet).id
            return reconciliation_service.repair(
                engine, user_id,
                apply_changes=args.apply,
                mastery_threshold=cfg.mastery_threshold,
            )
        return reconciliation_service.repair_all(
            engine,
            apply_changes=args.apply,
            mastery_threshold=cfg.mastery_threshold,
        )

    minutes = args.older_than_minutes or cfg.stale_session_minutes
    cancelled = score_ledger.abandon_stale_sessions(engine, timedelta(minutes=minutes))
    return {"cancelled": cancelled, "older_than_minutes": minutes}


async def _run_forever(args: argparse.Namespace, engine, cfg: TriviaConfig) -> None:
    while True:
        try:
            report = await run_db(run_job, args, engine, cfg)
            logger.info("Job %s finished: %s", args.job, json.dumps(report, default=str))
        except Exception:
            logger.exception("Job %s failed", args.job, extra={"task": args.job})
        await asyncio.sleep(args.every)


def main(argv: list[str] | None = None) -> int:
    """Bootstrap and run a maintenance job."""
    load_dotenv()
    args = _parse_args(argv)
    cfg = _load_config()
    engine = create_db_engine()

    if args.every:
        logger.info("Running %s every %ds", args.job, args.every)
        try:
            asyncio.run(_run_forever(args, engine, cfg))
        except KeyboardInterrupt:
            logger.info("Shutting down gracefully…")
        return 0

    report = run_job(args, engine, cfg)
    print(json.dumps(report, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
