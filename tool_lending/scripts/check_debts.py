#!/usr/bin/env python3
"""Compare cached user debt with the sum of unpaid transactions."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))


def find_drift(db) -> list[dict]:
    from sqlalchemy import select

    from models.lending_models import User
    from services.transaction_service import compute_user_debt

    rows = []
    for user in db.execute(select(User).order_by(User.UserID)).scalars().all():
        cached = round(float(user.TotalDebt or 0), 2)
        computed = compute_user_debt(db, user.UserID)
        rows.append(
            {
                "userID": user.UserID,
                "name": user.Name,
                "cached": cached,
                "computed": computed,
                "drift": round(cached - computed, 2),
            }
        )
    return rows


def main() -> int:
    parser = argparse.ArgumentParser(description="Tool lending debt check")
    parser.add_argument("--db-url", default=os.environ.get("TOOL_LENDING_DB_URL", ""))
    parser.add_argument("--fix", action="store_true", help="Rewrite cached debt for users with drift.")
    args = parser.parse_args()

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("TOOL_LENDING_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    os.environ.setdefault("TOOL_LENDING_DB_URL", db_url)
    from db.session import build_engine, build_session_factory
    from models.lending_models import User
    from services.transaction_service import recalculate_user_debt

    db = build_session_factory(build_engine(db_url))()
    try:
        rows = find_drift(db)
        drifted = [row for row in rows if row["drift"] != 0]
        print(f"Users: {len(rows)}  with drift: {len(drifted)}")
        for row in drifted:
            print(f"  - #{row['userID']} {row['name']}: cached={row['cached']:.2f} computed={row['computed']:.2f}")
        total = sum(row["computed"] for row in rows)
        print(f"Total outstanding debt: {total:.2f}")

        if args.fix and drifted:
            for row in drifted:
                recalculate_user_debt(db, db.get(User, row["userID"]))
            db.commit()
            print(f"Fixed {len(drifted)} user(s).")
    finally:
        db.close()
    return 1 if drifted and not args.fix else 0


if __name__ == "__main__":
    sys.exit(main())
