from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from ..core.clock import day_key
from ..schemas.challenges import ChallengeDefinition, ChallengeProgress

logger = logging.getLogger(__name__)

PROGRESS_COL = "user_daily_challenges"


def progress_id(user_id: str, challenge_id: str) -> str:
    return f"{user_id}:{challenge_id}"


def _normalize(doc: dict) -> ChallengeProgress:
    doc = {**doc}
    doc["id"] = str(doc.pop("_id"))
    return ChallengeProgress(**doc)


async def list_progress_rows(
    db: AsyncIOMotorDatabase, user_id: str, challenge_date: date
) -> dict[str, ChallengeProgress]:
    cursor = db[PROGRESS_COL].find({"user_id": user_id, "challenge_date": day_key(challenge_date)})
    rows: dict[str, ChallengeProgress] = {}
    async for doc in cursor:
        row = _normalize(doc)
        rows[row.challenge_id] = row
    return rows


async def ensure_progress_rows(
    db: AsyncIOMotorDatabase,
    user_id: str,
    challenge_date: date,
    definitions: Iterable[ChallengeDefinition],
    *,
    now: datetime,
) -> dict[str, ChallengeProgress]:
    """Create a pending row for every definition the user has not been evaluated against yet."""
    rows = await list_progress_rows(db, user_id, challenge_date)
    missing = [definition for definition in definitions if definition.id not in rows]
    if not missing:
        return rows

    for definition in missing:
        try:
            await db[PROGRESS_COL].update_one(
                {"_id": progress_id(user_id, definition.id)},
                {
                    "$setOnInsert": {
                        "user_id": user_id,
                        "challenge_id": definition.id,
                        "challenge_date": day_key(challenge_date),
                        "kind": definition.kind,
                        "target_value": definition.target_value,
                        "current_value": 0,
                        "status": "pending",
                        "completed_at": None,
                        "rewards": None,
                        "created_at": now,
                        "updated_at": now,
                    }
                },
                upsert=True,
            )
        except DuplicateKeyError:
            logger.debug("Progress row for %s/%s created concurrently", user_id, definition.id)
    return await list_progress_rows(db, user_id, challenge_date)


async def record_observations(
    db: AsyncIOMotorDatabase,
    user_id: str,
    rows: dict[str, ChallengeProgress],
    observed: dict[str, int],
    *,
    now: datetime,
) -> None:
    # status is left alone: completed rows stay completed whatever the counters say
    for challenge_id, value in observed.items():
        row = rows.get(challenge_id)
        if row is not None and row.current_value == value:
            continue
        await db[PROGRESS_COL].update_one(
            {"_id": progress_id(user_id, challenge_id)},
            {"$set": {"current_value": value, "updated_at": now}},
        )


async def mark_completed(
    db: AsyncIOMotorDatabase,
    user_id: str,
    definition: ChallengeDefinition,
    value: int,
    *,
    now: datetime,
) -> bool:
    """Flip a pending row to completed. Returns False if it was not pending anymore."""
    result = await db[PROGRESS_COL].update_one(
        {"_id": progress_id(user_id, definition.id), "status": "pending"},
        {
            "$set": {
                "status": "completed",
                "completed_at": now,
                "current_value": value,
                "rewards": definition.rewards.model_dump(),
                "updated_at": now,
            }
        },
    )
    return result.modified_count == 1
