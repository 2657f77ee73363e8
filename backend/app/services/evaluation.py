from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from redis.asyncio import Redis
from redis.exceptions import LockError

from ..core.clock import day_key
from ..core.config import settings
from ..core.errors import EvaluationBusyError, RewardApplicationError
from ..schemas.challenges import ChallengeTemplate, CompletedChallenge, EvaluationResult, UserLevel
from ..schemas.progress import EventSignals, ProgressSnapshot
from . import progress as progress_store
from .catalog import get_catalog_policy
from .challenge_progress import ensure_progress_rows, mark_completed, record_observations
from .daily_challenges import ensure_daily_catalog, list_daily_catalog
from .matcher import is_level_applicable, match_challenges

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "challenges:lock:"


@asynccontextmanager
async def user_evaluation_lock(redis: Redis, user_id: str) -> AsyncIterator[None]:
    """Serialise evaluations of one user across workers and devices."""
    lock = redis.lock(
        f"{LOCK_KEY_PREFIX}{user_id}",
        timeout=settings.evaluation_lock_timeout_seconds,
        blocking_timeout=settings.evaluation_lock_wait_seconds,
    )
    acquired = await lock.acquire()
    if not acquired:
        raise EvaluationBusyError(f"Challenge evaluation for {user_id} is already running, try again")
    try:
        yield
    finally:
        try:
            await lock.release()
        except LockError:
            logger.warning("Evaluation lock for %s expired before release", user_id)


async def evaluate_challenges(
    db: AsyncIOMotorDatabase,
    redis: Redis,
    *,
    user_id: str,
    level: UserLevel | str,
    snapshot: ProgressSnapshot,
    signals: EventSignals,
    challenge_date: date,
    now: datetime,
) -> EvaluationResult:
    """
    Evaluate the user's challenges for ``challenge_date`` against a snapshot.

    All rewards of the batch are applied before any row is flipped to completed,
    and only the call whose conditional flip succeeds reports the challenge, so
    every reward shows up in exactly one result (or error payload) even when
    calls race, fail half way or are retried.

    Raises:
        EvaluationBusyError: the per-user lock could not be taken in time.
        RewardApplicationError: a reward or completion was not recorded; the
            unflipped challenges stay pending and ``exc.completed`` lists the
            ones this call did finish.
    """
    async with user_evaluation_lock(redis, user_id):
        definitions = await list_daily_catalog(db, challenge_date)
        applicable = [d for d in definitions if is_level_applicable(d, level)]
        skipped = [d.id for d in definitions if not is_level_applicable(d, level)]

        rows = await ensure_progress_rows(db, user_id, challenge_date, applicable, now=now)
        match = match_challenges(((d, rows[d.id]) for d in applicable), snapshot, signals)
        for item in match.ignored:
            logger.warning("Skipping challenge %s with unknown kind %r", item.challenge_id, item.kind)

        await record_observations(db, user_id, rows, match.observed, now=now)

        # every reward lands before any row flips, so a failed grant leaves the whole batch pending
        for definition in match.satisfied:
            await progress_store.apply_reward(db, user_id, definition.id, definition.rewards, now=now)

        completed: list[CompletedChallenge] = []
        for definition in match.satisfied:
            try:
                flipped = await mark_completed(db, user_id, definition, match.observed[definition.id], now=now)
            except PyMongoError as exc:
                logger.error("Completion of %s for %s was not recorded: %s", definition.id, user_id, exc)
                error = RewardApplicationError(f"Completion of challenge {definition.id} was not recorded")
                error.completed = completed
                raise error from exc
            if not flipped:
                logger.info("Challenge %s for %s was completed by another evaluation", definition.id, user_id)
                continue
            logger.info("User %s completed challenge %s", user_id, definition.id)
            completed.append(
                CompletedChallenge(
                    challenge_id=definition.id,
                    kind=definition.kind,
                    title=definition.title,
                    completed_at=now,
                    rewards=definition.rewards,
                )
            )

    return EvaluationResult(
        user_id=user_id,
        challenge_date=day_key(challenge_date),
        completed=completed,
        ignored=match.ignored,
        skipped_for_level=skipped,
    )


async def refresh_user_challenges(
    db: AsyncIOMotorDatabase,
    redis: Redis,
    *,
    user_id: str,
    challenge_date: date,
    now: datetime,
    policy: Sequence[ChallengeTemplate] | None = None,
) -> EvaluationResult:
    """Make sure the day's catalog exists, then evaluate the user with stored progress."""
    await ensure_daily_catalog(db, challenge_date, policy or get_catalog_policy(), now=now)
    level = await progress_store.get_level(db, user_id)
    snapshot = await progress_store.get_snapshot(db, user_id, challenge_date)
    signals = await progress_store.get_event_signals(db, user_id, challenge_date)
    return await evaluate_challenges(
        db,
        redis,
        user_id=user_id,
        level=level,
        snapshot=snapshot,
        signals=signals,
        challenge_date=challenge_date,
        now=now,
    )
