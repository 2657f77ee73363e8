from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..core.clock import day_key
from ..core.errors import ChallengeNotFoundError
from ..schemas.challenges import ChallengeDefinition, ChallengeTemplate
from .catalog import validate_catalog_policy

logger = logging.getLogger(__name__)

DAILY_CHALLENGES_COL = "daily_challenges"


def definition_id(challenge_date: date, slug: str) -> str:
    return f"{day_key(challenge_date)}:{slug}"


def _normalize(doc: dict) -> ChallengeDefinition:
    doc = {**doc}
    doc["id"] = str(doc.pop("_id"))
    return ChallengeDefinition(**doc)


def _definition_document(template: ChallengeTemplate, challenge_date: date, now: datetime) -> dict:
    return {
        "slug": template.slug,
        "title": template.title,
        "description": template.description,
        "kind": template.kind.value,
        "target_value": template.target_value,
        "difficulty": template.difficulty.value,
        "rewards": template.rewards.model_dump(),
        "applicable_levels": [level.value for level in template.applicable_levels],
        "categories": list(template.categories),
        "effective_date": day_key(challenge_date),
        "active": True,
        "created_at": now,
    }


async def list_daily_catalog(
    db: AsyncIOMotorDatabase, challenge_date: date, *, active_only: bool = True
) -> list[ChallengeDefinition]:
    query: dict = {"effective_date": day_key(challenge_date)}
    if active_only:
        query["active"] = True
    cursor = db[DAILY_CHALLENGES_COL].find(query).sort("_id", 1)
    items: list[ChallengeDefinition] = []
    async for doc in cursor:
        items.append(_normalize(doc))
    return items


async def ensure_daily_catalog(
    db: AsyncIOMotorDatabase,
    challenge_date: date,
    policy: Sequence[ChallengeTemplate],
    *,
    now: datetime,
) -> list[ChallengeDefinition]:
    """
    Create the day's challenge definitions from the catalog policy.

    Definitions are keyed on ``<date>:<slug>`` and written with ``$setOnInsert``,
    so repeated or interrupted runs fill in whatever is missing and never touch
    rows that already exist (nor the user progress that points at them).

    Args:
        db: MongoDB database
        challenge_date: calendar day the definitions are valid for
        policy: challenge templates from configuration
        now: creation timestamp for new rows

    Returns:
        Every definition stored for the day, active or not, ordered by id.
    """
    templates = validate_catalog_policy(list(policy))

    existing = await list_daily_catalog(db, challenge_date, active_only=False)
    existing_ids = {definition.id for definition in existing}

    missing = [t for t in templates if definition_id(challenge_date, t.slug) not in existing_ids]
    if not missing:
        return existing

    created = 0
    for template in missing:
        challenge_id = definition_id(challenge_date, template.slug)
        try:
            result = await db[DAILY_CHALLENGES_COL].update_one(
                {"_id": challenge_id},
                {"$setOnInsert": _definition_document(template, challenge_date, now)},
                upsert=True,
            )
        except DuplicateKeyError:
            # a concurrent generator inserted the same id first
            logger.debug("Definition %s already inserted concurrently", challenge_id)
            continue
        if result.upserted_id is not None:
            created += 1

    logger.info("Created %d daily challenge definition(s) for %s", created, day_key(challenge_date))
    return await list_daily_catalog(db, challenge_date, active_only=False)


async def get_definition(db: AsyncIOMotorDatabase, challenge_id: str) -> ChallengeDefinition | None:
    doc = await db[DAILY_CHALLENGES_COL].find_one({"_id": challenge_id})
    if doc:
        return _normalize(doc)
    return None


async def set_definition_active(
    db: AsyncIOMotorDatabase, challenge_id: str, active: bool, *, now: datetime
) -> ChallengeDefinition:
    """Retire or restore a published definition. Nothing else on it is ever changed."""
    doc = await db[DAILY_CHALLENGES_COL].find_one_and_update(
        {"_id": challenge_id},
        {"$set": {"active": active, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise ChallengeNotFoundError(f"Challenge definition {challenge_id} not found")
    logger.info("Challenge definition %s set active=%s", challenge_id, active)
    return _normalize(doc)
