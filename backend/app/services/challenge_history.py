from __future__ import annotations

from datetime import date, timedelta

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..core.clock import day_key
from ..schemas.challenges import ChallengeProgress, ChallengeStats, TodayChallenge, UserLevel
from .challenge_progress import PROGRESS_COL, list_progress_rows
from .daily_challenges import list_daily_catalog
from .matcher import is_level_applicable

DEFAULT_HISTORY_LIMIT = 30


def _progress_percentage(current: int, target: int) -> int:
    return min(100, round(current / target * 100))


async def get_today_challenges(
    db: AsyncIOMotorDatabase, user_id: str, challenge_date: date, level: UserLevel | str
) -> list[TodayChallenge]:
    """The day's active challenges for the user's level, merged with their progress."""
    definitions = await list_daily_catalog(db, challenge_date)
    rows = await list_progress_rows(db, user_id, challenge_date)

    items: list[TodayChallenge] = []
    for definition in definitions:
        if not is_level_applicable(definition, level):
            continue
        row = rows.get(definition.id)
        current = row.current_value if row else 0
        completed = row is not None and row.status == "completed"
        items.append(
            TodayChallenge(
                **definition.model_dump(),
                current_value=current,
                status="completed" if completed else "pending",
                completed_at=row.completed_at if row else None,
                progress_percentage=100 if completed else _progress_percentage(current, definition.target_value),
                remaining=0 if completed else max(0, definition.target_value - current),
            )
        )
    return items


async def list_history(
    db: AsyncIOMotorDatabase,
    user_id: str,
    *,
    start: date | None = None,
    end: date | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[ChallengeProgress]:
    query: dict = {"user_id": user_id}
    date_range: dict = {}
    if start:
        date_range["$gte"] = day_key(start)
    if end:
        date_range["$lte"] = day_key(end)
    if date_range:
        query["challenge_date"] = date_range

    cursor = db[PROGRESS_COL].find(query).sort([("challenge_date", -1), ("_id", 1)]).limit(limit)
    items: list[ChallengeProgress] = []
    async for doc in cursor:
        doc = {**doc}
        doc["id"] = str(doc.pop("_id"))
        items.append(ChallengeProgress(**doc))
    return items


def _challenge_streak(completed_days: set[str], today: date) -> int:
    # today without a completion yet does not break a streak that reached yesterday
    day = today if day_key(today) in completed_days else today - timedelta(days=1)
    streak = 0
    while day_key(day) in completed_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


async def get_stats(db: AsyncIOMotorDatabase, user_id: str, today: date) -> ChallengeStats:
    total = await db[PROGRESS_COL].count_documents({"user_id": user_id})

    completed = 0
    xp_earned = 0
    completed_days: set[str] = set()
    async for doc in db[PROGRESS_COL].find({"user_id": user_id, "status": "completed"}):
        completed += 1
        xp_earned += (doc.get("rewards") or {}).get("xp_bonus", 0)
        completed_days.add(doc["challenge_date"])

    return ChallengeStats(
        total_challenges=total,
        completed_challenges=completed,
        completion_rate=round(completed / total * 100, 2) if total else 0.0,
        xp_earned=xp_earned,
        current_streak=_challenge_streak(completed_days, today),
    )
