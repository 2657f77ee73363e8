from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..core.clock import day_key
from ..core.errors import RewardApplicationError
from ..schemas.challenges import ChallengeRewards, UserLevel
from ..schemas.progress import EventSignals, GameResultCreate, ProgressSnapshot, UserProfileOut

logger = logging.getLogger(__name__)

PROFILES_COL = "user_profiles"
DAILY_PROGRESS_COL = "daily_progress"

LOGIN_RETRIES = 3


def _daily_id(user_id: str, day: date) -> str:
    return f"{user_id}:{day_key(day)}"


def _new_profile(now: datetime) -> dict:
    return {
        "level": UserLevel.beginner.value,
        "total_xp": 0,
        "streak": 0,
        "bonus_streak": 0,
        "longest_streak": 0,
        "last_login_date": None,
        "badges": [],
        "special_rewards": [],
        "granted_challenges": [],
        "created_at": now,
    }


async def _upsert(collection: AsyncIOMotorCollection, query: dict, update: dict):
    try:
        return await collection.update_one(query, update, upsert=True)
    except DuplicateKeyError:
        # lost an insert race; the document exists now, so the retry matches it
        return await collection.update_one(query, update, upsert=True)


async def ensure_profile(db: AsyncIOMotorDatabase, user_id: str, *, now: datetime) -> None:
    await _upsert(db[PROFILES_COL], {"_id": user_id}, {"$setOnInsert": _new_profile(now)})


def _current_streak(profile: dict, day: date) -> int:
    last = profile.get("last_login_date")
    if not last:
        return 0
    # a streak survives until the end of the day after the last login
    if last < day_key(day - timedelta(days=1)):
        return 0
    return int(profile.get("streak", 0))


def _document_to_profile(user_id: str, doc: dict) -> UserProfileOut:
    return UserProfileOut(
        user_id=user_id,
        level=doc.get("level", UserLevel.beginner.value),
        total_xp=doc.get("total_xp", 0),
        streak=doc.get("streak", 0),
        bonus_streak=doc.get("bonus_streak", 0),
        longest_streak=doc.get("longest_streak", 0),
        last_login_date=doc.get("last_login_date"),
        badges=doc.get("badges", []),
        special_rewards=doc.get("special_rewards", []),
        updated_at=doc.get("updated_at"),
    )


async def get_profile(db: AsyncIOMotorDatabase, user_id: str) -> UserProfileOut:
    doc = await db[PROFILES_COL].find_one({"_id": user_id}) or {}
    return _document_to_profile(user_id, doc)


async def get_level(db: AsyncIOMotorDatabase, user_id: str) -> UserLevel:
    profile = await get_profile(db, user_id)
    return profile.level


async def set_level(db: AsyncIOMotorDatabase, user_id: str, level: UserLevel, *, now: datetime) -> UserProfileOut:
    await ensure_profile(db, user_id, now=now)
    await db[PROFILES_COL].update_one(
        {"_id": user_id},
        {"$set": {"level": level.value, "updated_at": now}},
    )
    return await get_profile(db, user_id)


async def get_snapshot(db: AsyncIOMotorDatabase, user_id: str, day: date) -> ProgressSnapshot:
    """
    Counters for ``day``; every field except the login streak starts from zero each day.

    ``streak`` is the login streak only; ``bonus_streak`` from challenge rewards is
    kept out so a reward cannot complete a streak challenge.
    """
    daily = await db[DAILY_PROGRESS_COL].find_one({"_id": _daily_id(user_id, day)}) or {}
    profile = await db[PROFILES_COL].find_one({"_id": user_id}) or {}
    return ProgressSnapshot(
        xp=daily.get("xp", 0),
        streak=_current_streak(profile, day),
        games_played=daily.get("games_played", 0),
        perfect_scores=daily.get("perfect_scores", 0),
        time_spent_seconds=daily.get("time_spent_seconds", 0),
        categories_completed=len(daily.get("completed_categories", [])),
        correct_answers=daily.get("correct_answers", 0),
    )


async def get_event_signals(db: AsyncIOMotorDatabase, user_id: str, day: date) -> EventSignals:
    daily = await db[DAILY_PROGRESS_COL].find_one({"_id": _daily_id(user_id, day)}) or {}
    return EventSignals(
        logged_in_today=bool(daily.get("logged_in", False)),
        unlocked_special_achievement=bool(daily.get("special_achievement", False)),
    )


def _day_insert_fields(user_id: str, day: date, now: datetime) -> dict:
    return {"user_id": user_id, "date": day_key(day), "created_at": now}


async def record_game_result(
    db: AsyncIOMotorDatabase, user_id: str, day: date, result: GameResultCreate, *, now: datetime
) -> ProgressSnapshot:
    update: dict = {
        "$setOnInsert": _day_insert_fields(user_id, day, now),
        "$inc": {
            "xp": result.xp_earned,
            "games_played": 1,
            "perfect_scores": 1 if result.is_perfect else 0,
            "time_spent_seconds": result.time_spent_seconds,
            "correct_answers": result.correct_answers,
        },
        "$set": {"updated_at": now},
    }
    if result.completed_category:
        update["$addToSet"] = {"completed_categories": result.completed_category}
    await _upsert(db[DAILY_PROGRESS_COL], {"_id": _daily_id(user_id, day)}, update)

    await ensure_profile(db, user_id, now=now)
    await db[PROFILES_COL].update_one(
        {"_id": user_id},
        {"$inc": {"total_xp": result.xp_earned}, "$set": {"updated_at": now}},
    )
    logger.debug("Recorded %s result for %s on %s", result.game_type, user_id, day_key(day))
    return await get_snapshot(db, user_id, day)


async def record_login(db: AsyncIOMotorDatabase, user_id: str, day: date, *, now: datetime) -> int:
    """
    Mark the day as logged in and advance the login streak.

    Consecutive days add one, a repeated login on the same day changes nothing,
    and a gap restarts the streak at one. Returns the streak after the update.
    """
    await _upsert(
        db[DAILY_PROGRESS_COL],
        {"_id": _daily_id(user_id, day)},
        {"$setOnInsert": _day_insert_fields(user_id, day, now), "$set": {"logged_in": True, "updated_at": now}},
    )
    await ensure_profile(db, user_id, now=now)

    today = day_key(day)
    yesterday = day_key(day - timedelta(days=1))
    for _ in range(LOGIN_RETRIES):
        profile = await db[PROFILES_COL].find_one({"_id": user_id}) or {}
        last = profile.get("last_login_date")
        if last and last >= today:
            return int(profile.get("streak", 0))

        # the filter pins last_login_date and the counter changes in the same write
        if last == yesterday:
            query = {"_id": user_id, "last_login_date": yesterday}
            update = {"$inc": {"streak": 1}, "$set": {"last_login_date": today, "updated_at": now}}
        else:
            query = {"_id": user_id, "last_login_date": {"$nin": [yesterday, today]}}
            update = {"$set": {"streak": 1, "last_login_date": today, "updated_at": now}}
        doc = await db[PROFILES_COL].find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
        if doc:
            streak = int(doc["streak"])
            await db[PROFILES_COL].update_one({"_id": user_id}, {"$max": {"longest_streak": streak}})
            return streak
        # another login for this user moved last_login_date first; re-read
    profile = await db[PROFILES_COL].find_one({"_id": user_id}) or {}
    return int(profile.get("streak", 0))


async def record_special_achievement(db: AsyncIOMotorDatabase, user_id: str, day: date, *, now: datetime) -> None:
    await _upsert(
        db[DAILY_PROGRESS_COL],
        {"_id": _daily_id(user_id, day)},
        {
            "$setOnInsert": _day_insert_fields(user_id, day, now),
            "$set": {"special_achievement": True, "updated_at": now},
        },
    )


async def apply_reward(
    db: AsyncIOMotorDatabase,
    user_id: str,
    challenge_id: str,
    rewards: ChallengeRewards,
    *,
    now: datetime,
) -> bool:
    """
    Grant a challenge reward to the user's profile at most once.

    The bonus and the challenge id are written in a single document update
    guarded by ``granted_challenges != challenge_id``, so concurrent or retried
    grants for the same challenge cannot double-count and two different
    challenges cannot lose each other's increments.

    Returns:
        True when this call granted the reward, False when it was already granted.

    Raises:
        RewardApplicationError: the write did not go through.
    """
    update: dict = {
        "$inc": {"total_xp": rewards.xp_bonus, "bonus_streak": rewards.streak_bonus},
        "$push": {"granted_challenges": challenge_id},
        "$set": {"updated_at": now},
    }
    if rewards.special_reward:
        update["$push"]["special_rewards"] = rewards.special_reward
    if rewards.badge:
        update["$addToSet"] = {"badges": rewards.badge}

    try:
        await ensure_profile(db, user_id, now=now)
        result = await db[PROFILES_COL].update_one(
            {"_id": user_id, "granted_challenges": {"$ne": challenge_id}},
            update,
        )
    except PyMongoError as exc:
        logger.error("Reward for %s could not be applied to %s: %s", challenge_id, user_id, exc)
        raise RewardApplicationError(f"Reward for challenge {challenge_id} was not recorded") from exc

    if result.modified_count == 0:
        logger.info("Reward for %s already granted to %s", challenge_id, user_id)
        return False
    return True
