from .challenges import (
    ChallengeDefinition,
    ChallengeKind,
    ChallengeProgress,
    ChallengeRewards,
    ChallengeStats,
    ChallengeTemplate,
    CompletedChallenge,
    DefinitionActiveUpdate,
    Difficulty,
    EvaluationResult,
    IgnoredChallenge,
    TodayChallenge,
    UserLevel,
)
from .progress import (
    ActivityResponse,
    EventSignals,
    GameResultCreate,
    LevelUpdate,
    ProgressSnapshot,
    UserProfileOut,
)

__all__ = [
    "ActivityResponse",
    "ChallengeDefinition",
    "ChallengeKind",
    "ChallengeProgress",
    "ChallengeRewards",
    "ChallengeStats",
    "ChallengeTemplate",
    "CompletedChallenge",
    "DefinitionActiveUpdate",
    "Difficulty",
    "EvaluationResult",
    "EventSignals",
    "GameResultCreate",
    "IgnoredChallenge",
    "LevelUpdate",
    "ProgressSnapshot",
    "TodayChallenge",
    "UserLevel",
    "UserProfileOut",
]
