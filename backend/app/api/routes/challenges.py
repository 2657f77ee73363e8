from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from ...core.clock import challenge_today
from ...dependencies import get_challenge_policy, get_mongo_db, get_now, get_redis, require_admin_key
from ...schemas import (
    ChallengeDefinition,
    ChallengeProgress,
    ChallengeStats,
    ChallengeTemplate,
    EvaluationResult,
    TodayChallenge,
)
from ...services import progress as progress_store
from ...services.challenge_history import DEFAULT_HISTORY_LIMIT, get_stats, get_today_challenges, list_history
from ...services.daily_challenges import ensure_daily_catalog, list_daily_catalog
from ...services.evaluation import refresh_user_challenges

router = APIRouter()


@router.post(
    "/catalog/today",
    response_model=list[ChallengeDefinition],
    dependencies=[Depends(require_admin_key)],
)
async def ensure_today_catalog(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> list[ChallengeDefinition]:
    """Scheduler hook: generate today's catalog (safe to call repeatedly)"""
    return await ensure_daily_catalog(db, challenge_today(now), policy, now=now)


@router.post(
    "/catalog/{challenge_date}",
    response_model=list[ChallengeDefinition],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin_key)],
)
async def ensure_catalog_for_date(
    challenge_date: date,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> list[ChallengeDefinition]:
    return await ensure_daily_catalog(db, challenge_date, policy, now=now)


@router.get("/catalog/today", response_model=list[ChallengeDefinition])
async def get_today_catalog(
    active_only: bool = True,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
) -> list[ChallengeDefinition]:
    return await list_daily_catalog(db, challenge_today(now), active_only=active_only)


@router.get("/catalog/{challenge_date}", response_model=list[ChallengeDefinition])
async def get_catalog(
    challenge_date: date,
    active_only: bool = True,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> list[ChallengeDefinition]:
    return await list_daily_catalog(db, challenge_date, active_only=active_only)


@router.get("/users/{user_id}/today", response_model=list[TodayChallenge])
async def get_user_today(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> list[TodayChallenge]:
    """Today's challenges with the user's progress; the first request of the day creates the catalog"""
    today = challenge_today(now)
    await ensure_daily_catalog(db, today, policy, now=now)
    level = await progress_store.get_level(db, user_id)
    return await get_today_challenges(db, user_id, today, level)


@router.post("/users/{user_id}/evaluate", response_model=EvaluationResult)
async def evaluate_user(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    redis: Redis = Depends(get_redis),
    now: datetime = Depends(get_now),
    policy: tuple[ChallengeTemplate, ...] = Depends(get_challenge_policy),
) -> EvaluationResult:
    return await refresh_user_challenges(
        db, redis, user_id=user_id, challenge_date=challenge_today(now), now=now, policy=policy
    )


@router.get("/users/{user_id}/history", response_model=list[ChallengeProgress])
async def get_user_history(
    user_id: str,
    start: date | None = None,
    end: date | None = None,
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=365),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> list[ChallengeProgress]:
    return await list_history(db, user_id, start=start, end=end, limit=limit)


@router.get("/users/{user_id}/stats", response_model=ChallengeStats)
async def get_user_stats(
    user_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
) -> ChallengeStats:
    return await get_stats(db, user_id, challenge_today(now))
