from datetime import datetime

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from ...core.clock import challenge_today
from ...dependencies import get_challenge_policy, get_mongo_db, get_now, get_redis
from ...schemas import (
    ActivityResponse,
    ChallengeTemplate,
    GameResultCreate,
    LevelUpdate,
    ProgressSnapshot,
    UserProfileOut,
)
from ...services import progress as progress_store
from ...services.evaluation import refresh_user_challenges

router = APIRouter()


async def _activity_response(
    db: AsyncIOMotorDatabase,
    redis: Redis,
    user_id: str,
    now: datetime,
    policy: tuple[ChallengeTemplate, ...],
) -> ActivityResponse:
    today = challenge_today(now)
    evaluation = await refresh_user_challenges(
        db, redis, user_id=user_id, challenge_date=today, now=now, policy=policy
    )
    snapshot = await progress_store.get_snapshot(db, user_id, today)
    return ActivityResponse(snapshot=snapshot, evaluation=evaluation)


@router.get("/{user_id}", response_model=UserProfileOut)
async def get_profile(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> UserProfileOut:
    return await progress_store.get_profile(db, user_id)


@router.put("/{user_id}/level", response_model=UserProfileOut)
async def update_level(
    user_id: str,
    payload: LevelUpdate,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
) -> UserProfileOut:
    return await progress_store.set_level(db, user_id, payload.level, now=now)


@router.get("/{user_id}/snapshot", response_model=ProgressSnapshot)
async def get_snapshot(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
) -> ProgressSnapshot:
    return await progress_store.get_snapshot(db, user_id, challenge_today(now))


@router.post("/{user_id}/games", response_model=ActivityResponse)
async def record_game(
    user_id: str,
    payload: GameResultCreate,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    redis: Redis = Depends(get_redis),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> ActivityResponse:
    """Record a finished game, then re-evaluate today's challenges"""
    await progress_store.record_game_result(db, user_id, challenge_today(now), payload, now=now)
    return await _activity_response(db, redis, user_id, now, policy)


@router.post("/{user_id}/login", response_model=ActivityResponse)
async def record_login(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    redis: Redis = Depends(get_redis),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> ActivityResponse:
    await progress_store.record_login(db, user_id, challenge_today(now), now=now)
    return await _activity_response(db, redis, user_id, now, policy)


@router.post("/{user_id}/special-achievement", response_model=ActivityResponse)
async def record_special_achievement(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    redis: Redis = Depends(get_redis),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> ActivityResponse:
    await progress_store.record_special_achievement(db, user_id, challenge_today(now), now=now)
    return await _activity_response(db, redis, user_id, now, policy)
