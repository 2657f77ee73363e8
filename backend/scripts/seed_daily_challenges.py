"""
Daily challenge catalog generation script

Creates the challenge definitions for one or more calendar days from the
catalog policy. Runs are idempotent: existing definitions (and the user
progress pointing at them) are left untouched, missing ones are filled in.

    python backend/scripts/seed_daily_challenges.py                 # today
    python backend/scripts/seed_daily_challenges.py --date 2024-01-01 --days 7
    python backend/scripts/seed_daily_challenges.py --policy catalog.json
"""

import argparse
import asyncio
import sys
from datetime import date, timedelta
from pathlib import Path

# add the repository root to the import path
project_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(project_root))

from backend.app.core.clock import challenge_today, utc_now  # noqa: E402
from backend.app.core.config import settings  # noqa: E402
from backend.app.core.errors import CatalogConfigError  # noqa: E402
from backend.app.db.init import ensure_indexes  # noqa: E402
from backend.app.db.mongo import MongoConnectionManager  # noqa: E402
from backend.app.services.catalog import load_catalog_policy  # noqa: E402
from backend.app.services.daily_challenges import ensure_daily_catalog  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate daily challenge definitions")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="first day (YYYY-MM-DD), default today")
    parser.add_argument("--days", type=int, default=1, help="number of consecutive days to generate")
    parser.add_argument("--policy", type=Path, default=None, help="JSON catalog policy file")
    return parser.parse_args(argv)


async def seed_daily_challenges(start: date, days: int, policy_path: Path | None) -> int:
    policy = load_catalog_policy(policy_path or settings.challenge_catalog_path)
    db = MongoConnectionManager.get_database()
    await ensure_indexes(db)

    print(f"Generating challenges for {days} day(s) from {start.isoformat()} ({len(policy)} templates)")
    try:
        for offset in range(days):
            day = start + timedelta(days=offset)
            definitions = await ensure_daily_catalog(db, day, policy, now=utc_now())
            print(f"  ✓ {day.isoformat()}: {len(definitions)} definitions")
            for definition in definitions:
                state = "" if definition.active else " (retired)"
                print(f"      - {definition.id} [{definition.kind} ≥ {definition.target_value}]{state}")
    finally:
        await MongoConnectionManager.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.days < 1:
        print("[error] --days must be at least 1", file=sys.stderr)
        return 2
    try:
        return asyncio.run(seed_daily_challenges(args.date or challenge_today(), args.days, args.policy))
    except CatalogConfigError as exc:
        print(f"[error] {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
