from fastapi import APIRouter

from .routes import admin, challenges, health, progress

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(challenges.router, prefix="/challenges", tags=["challenges"])
api_router.include_router(progress.router, prefix="/progress", tags=["progress"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
