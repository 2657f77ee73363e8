from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .challenges import EvaluationResult, UserLevel


class ProgressSnapshot(BaseModel):
    xp: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    games_played: int = Field(default=0, ge=0)
    perfect_scores: int = Field(default=0, ge=0)
    time_spent_seconds: int = Field(default=0, ge=0)
    categories_completed: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)


class EventSignals(BaseModel):
    logged_in_today: bool = False
    unlocked_special_achievement: bool = False


class GameResultCreate(BaseModel):
    game_type: str = Field(min_length=1)
    score: int = Field(ge=0)
    max_score: int = Field(gt=0)
    time_spent_seconds: int = Field(default=0, ge=0)
    correct_answers: int = Field(default=0, ge=0)
    xp_earned: int = Field(default=0, ge=0)
    completed_category: str | None = None

    @model_validator(mode="after")
    def _score_within_max(self) -> "GameResultCreate":
        if self.score > self.max_score:
            raise ValueError("score cannot exceed max_score")
        return self

    @property
    def is_perfect(self) -> bool:
        return self.score == self.max_score


class UserProfileOut(BaseModel):
    user_id: str
    level: UserLevel = UserLevel.beginner
    total_xp: int = 0
    streak: int = 0
    bonus_streak: int = Field(default=0, description="Streak days granted by challenge rewards")
    longest_streak: int = 0
    last_login_date: str | None = None
    badges: list[str] = Field(default_factory=list)
    special_rewards: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None


class LevelUpdate(BaseModel):
    level: UserLevel


class ActivityResponse(BaseModel):
    snapshot: ProgressSnapshot
    evaluation: EvaluationResult
