from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChallengeKind(str, Enum):
    xp_goal = "xp_goal"
    streak_goal = "streak_goal"
    games_played = "games_played"
    perfect_scores = "perfect_scores"
    time_spent = "time_spent"
    categories_completed = "categories_completed"
    correct_answers = "correct_answers"
    daily_login = "daily_login"
    special_achievement = "special_achievement"


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"
    expert = "expert"


class UserLevel(str, Enum):
    beginner = "Beginner"
    intermediate = "Intermediate"
    advanced = "Advanced"


ProgressStatus = Literal["pending", "completed"]


class ChallengeRewards(BaseModel):
    xp_bonus: int = Field(default=0, ge=0)
    streak_bonus: int = Field(default=0, ge=0)
    special_reward: str | None = None
    badge: str | None = None


class ChallengeTemplate(BaseModel):
    """One entry of the catalog policy; stamped with a date to become a definition."""

    model_config = ConfigDict(extra="forbid")

    slug: str = Field(min_length=1, max_length=64, pattern=r"^[a-z0-9_-]+$")
    title: str = Field(min_length=1)
    description: str = ""
    kind: ChallengeKind
    target_value: int = Field(gt=0)
    difficulty: Difficulty = Difficulty.medium
    rewards: ChallengeRewards = Field(default_factory=ChallengeRewards)
    applicable_levels: list[UserLevel] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)


class ChallengeDefinition(BaseModel):
    id: str
    slug: str
    title: str
    description: str = ""
    # stored as plain text so rows written with a kind this build does not know still load
    kind: str
    target_value: int
    difficulty: str = Difficulty.medium.value
    rewards: ChallengeRewards = Field(default_factory=ChallengeRewards)
    applicable_levels: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    effective_date: str
    active: bool = True
    created_at: datetime | None = None


class ChallengeProgress(BaseModel):
    id: str
    user_id: str
    challenge_id: str
    challenge_date: str
    kind: str
    target_value: int
    current_value: int = 0
    status: ProgressStatus = "pending"
    completed_at: datetime | None = None
    rewards: ChallengeRewards | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CompletedChallenge(BaseModel):
    challenge_id: str
    kind: str
    title: str
    completed_at: datetime
    rewards: ChallengeRewards


class IgnoredChallenge(BaseModel):
    challenge_id: str
    kind: str
    reason: str


class EvaluationResult(BaseModel):
    user_id: str
    challenge_date: str
    completed: list[CompletedChallenge] = Field(default_factory=list)
    ignored: list[IgnoredChallenge] = Field(default_factory=list)
    skipped_for_level: list[str] = Field(default_factory=list)


class TodayChallenge(ChallengeDefinition):
    current_value: int = 0
    status: ProgressStatus = "pending"
    completed_at: datetime | None = None
    progress_percentage: int = 0
    remaining: int = 0


class ChallengeStats(BaseModel):
    total_challenges: int
    completed_challenges: int
    completion_rate: float = Field(description="Completed share of all challenges, in percent")
    xp_earned: int
    current_streak: int = Field(description="Consecutive days ending today with a completed challenge")


class DefinitionActiveUpdate(BaseModel):
    active: bool
