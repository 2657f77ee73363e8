from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ...db.mongo import MongoConnectionManager
from ...db.redis import RedisConnectionManager

router = APIRouter()


@router.get("/health", summary="Liveness check")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready", summary="MongoDB and Redis reachability")
async def readiness() -> JSONResponse:
    checks = {
        "mongodb": await MongoConnectionManager.ping(),
        "redis": await RedisConnectionManager.ping(),
    }
    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "degraded", "checks": checks},
    )
