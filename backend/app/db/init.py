from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorDatabase


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # several definitions share one effective_date; (effective_date, slug) is the key
    await db["daily_challenges"].create_index([("effective_date", 1), ("active", 1)])
    await db["daily_challenges"].create_index([("effective_date", 1), ("slug", 1)], unique=True)
    await db["user_daily_challenges"].create_index([("user_id", 1), ("challenge_id", 1)], unique=True)
    await db["user_daily_challenges"].create_index([("user_id", 1), ("challenge_date", -1)])
    await db["user_daily_challenges"].create_index([("user_id", 1), ("status", 1)])
    await db["daily_progress"].create_index([("user_id", 1), ("date", -1)])
