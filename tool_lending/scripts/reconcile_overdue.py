#!/usr/bin/env python3
"""Scheduled job: promote overdue rentals to late and queue member reminders."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import date
from pathlib import Path


APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import config  # noqa: E402


logger = logging.getLogger("tool_lending.reconcile")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Promote overdue rentals to late status.")
    parser.add_argument(
        "--db-url",
        default=os.environ.get("TOOL_LENDING_DB_URL", ""),
        help="SQLAlchemy DB URL; defaults to TOOL_LENDING_DB_URL env var.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running, reconciling every --interval seconds.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=config.OVERDUE_RECONCILE_INTERVAL_SECONDS,
        help="Seconds between runs in --loop mode; defaults to OVERDUE_RECONCILE_INTERVAL_SECONDS.",
    )
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Evaluate as of this ISO date instead of the current date.",
    )
    return parser


def run_once(session_factory, today: date | None = None) -> dict:
    from services.reconcile_service import run_reconciliation

    db = session_factory()
    try:
        return run_reconciliation(db, today)
    finally:
        db.close()


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    if not args.db_url:
        parser.error("Missing DB URL. Set TOOL_LENDING_DB_URL or pass --db-url.")
    if args.interval <= 0:
        parser.error("--interval must be > 0")

    config.configure_logging()
    os.environ.setdefault("TOOL_LENDING_DB_URL", args.db_url)
    from db.session import build_engine, build_session_factory

    session_factory = build_session_factory(build_engine(args.db_url))
    try:
        while True:
            summary = run_once(session_factory, args.today)
            logger.info(
                "Run finished checked=%s marked_late=%s conflicts=%s reminders=%s",
                summary["checked"],
                summary["markedLate"],
                summary["conflicts"],
                summary["membershipReminders"],
            )
            if not args.loop:
                return 0
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Reconciliation loop stopped")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
