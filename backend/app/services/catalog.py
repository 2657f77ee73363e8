from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from ..core.config import settings
from ..core.errors import CatalogConfigError
from ..schemas.challenges import ChallengeTemplate

logger = logging.getLogger(__name__)

DEFAULT_CATALOG: list[dict[str, Any]] = [
    {
        "slug": "daily-xp-goal",
        "title": "Daily XP Goal",
        "description": "Earn 100 XP today",
        "kind": "xp_goal",
        "target_value": 100,
        "difficulty": "easy",
        "rewards": {"xp_bonus": 50, "streak_bonus": 1},
        "categories": ["basic_letters", "vowels"],
    },
    {
        "slug": "perfect-score-master",
        "title": "Perfect Score Master",
        "description": "Get 3 perfect scores today",
        "kind": "perfect_scores",
        "target_value": 3,
        "difficulty": "medium",
        "rewards": {"xp_bonus": 100, "special_reward": "Perfect Score Badge"},
        "categories": ["basic_letters", "vowels", "tones"],
    },
    {
        "slug": "streak-keeper",
        "title": "Streak Keeper",
        "description": "Maintain your streak for 3 days",
        "kind": "streak_goal",
        "target_value": 3,
        "difficulty": "medium",
        "rewards": {"xp_bonus": 75, "streak_bonus": 2},
    },
    {
        "slug": "game-marathon",
        "title": "Game Marathon",
        "description": "Play 5 games today",
        "kind": "games_played",
        "target_value": 5,
        "difficulty": "easy",
        "rewards": {"xp_bonus": 80, "special_reward": "Marathon Badge"},
    },
    {
        "slug": "time-master",
        "title": "Time Master",
        "description": "Spend 30 minutes learning today",
        "kind": "time_spent",
        "target_value": 1800,
        "difficulty": "hard",
        "rewards": {"xp_bonus": 120, "special_reward": "Time Master Badge"},
    },
    {
        "slug": "daily-login",
        "title": "Daily Check-in",
        "description": "Open the app today",
        "kind": "daily_login",
        "target_value": 1,
        "difficulty": "easy",
        "rewards": {"xp_bonus": 10},
    },
    {
        "slug": "sharp-mind",
        "title": "Sharp Mind",
        "description": "Answer 50 questions correctly today",
        "kind": "correct_answers",
        "target_value": 50,
        "difficulty": "hard",
        "rewards": {"xp_bonus": 90, "badge": "sharp_mind"},
        "applicable_levels": ["Intermediate", "Advanced"],
    },
    {
        "slug": "category-explorer",
        "title": "Category Explorer",
        "description": "Finish 2 lesson categories today",
        "kind": "categories_completed",
        "target_value": 2,
        "difficulty": "expert",
        "rewards": {"xp_bonus": 150, "badge": "explorer"},
        "applicable_levels": ["Advanced"],
    },
]

_templates_adapter = TypeAdapter(list[ChallengeTemplate])


def validate_catalog_policy(raw: Any) -> list[ChallengeTemplate]:
    """
    Parse and check a catalog policy.

    An empty policy is rejected: a day with zero definitions would look the same
    as a day that was already generated.
    """
    if not isinstance(raw, list) or not raw:
        raise CatalogConfigError("Challenge catalog policy must be a non-empty list of templates")

    try:
        templates = _templates_adapter.validate_python(raw)
    except ValidationError as exc:
        raise CatalogConfigError(f"Malformed challenge catalog policy: {exc.error_count()} error(s)\n{exc}") from exc

    seen: set[str] = set()
    for template in templates:
        if template.slug in seen:
            raise CatalogConfigError(f"Duplicate template slug in catalog policy: {template.slug}")
        seen.add(template.slug)
    return templates


def load_catalog_policy(path: Path | None = None) -> list[ChallengeTemplate]:
    if path is None:
        return validate_catalog_policy(DEFAULT_CATALOG)

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogConfigError(f"Cannot read challenge catalog policy from {path}: {exc}") from exc
    templates = validate_catalog_policy(raw)
    logger.info("Loaded %d challenge templates from %s", len(templates), path)
    return templates


@lru_cache
def get_catalog_policy() -> tuple[ChallengeTemplate, ...]:
    return tuple(load_catalog_policy(settings.challenge_catalog_path))
