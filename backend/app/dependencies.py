from collections.abc import AsyncGenerator
from datetime import datetime

from fastapi import Header, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from .core.clock import utc_now
from .core.config import settings
from .db.mongo import MongoConnectionManager
from .db.redis import RedisConnectionManager
from .schemas.challenges import ChallengeTemplate
from .services.catalog import get_catalog_policy


async def get_mongo_db() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    db = MongoConnectionManager.get_database()
    yield db


async def get_redis() -> AsyncGenerator[Redis, None]:
    client = RedisConnectionManager.get_client()
    try:
        yield client
    finally:
        # singleton client, closed in the application lifespan
        pass


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """Scheduler/admin endpoints check the ADMIN_API_KEY header when one is configured."""
    admin_key = settings.admin_api_key.strip()
    if admin_key and x_admin_key != admin_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin key required")


def get_now() -> datetime:
    return utc_now()


def get_challenge_policy() -> tuple[ChallengeTemplate, ...]:
    return get_catalog_policy()
