from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from ...dependencies import get_mongo_db, get_now, require_admin_key
from ...schemas import ChallengeDefinition, DefinitionActiveUpdate
from ...services.daily_challenges import get_definition, set_definition_active

router = APIRouter(dependencies=[Depends(require_admin_key)])


@router.get("/challenges/{challenge_id}", response_model=ChallengeDefinition)
async def get_challenge_definition_endpoint(
    challenge_id: str,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
) -> ChallengeDefinition:
    definition = await get_definition(db, challenge_id)
    if not definition:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Challenge definition not found")
    return definition


@router.patch("/challenges/{challenge_id}", response_model=ChallengeDefinition)
async def update_challenge_definition_endpoint(
    challenge_id: str,
    payload: DefinitionActiveUpdate,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    now: datetime = Depends(get_now),
) -> ChallengeDefinition:
    """Retire (active=false) or restore a published definition"""
    return await set_definition_active(db, challenge_id, payload.active, now=now)
