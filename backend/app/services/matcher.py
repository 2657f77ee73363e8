"""Decide which pending challenges a progress snapshot satisfies. No I/O."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from ..schemas.challenges import (
    ChallengeDefinition,
    ChallengeKind,
    ChallengeProgress,
    IgnoredChallenge,
    UserLevel,
)
from ..schemas.progress import EventSignals, ProgressSnapshot

# Threshold kinds: compared against a snapshot counter
SNAPSHOT_FIELDS: dict[ChallengeKind, str] = {
    ChallengeKind.xp_goal: "xp",
    ChallengeKind.streak_goal: "streak",
    ChallengeKind.games_played: "games_played",
    ChallengeKind.perfect_scores: "perfect_scores",
    ChallengeKind.time_spent: "time_spent_seconds",
    ChallengeKind.categories_completed: "categories_completed",
    ChallengeKind.correct_answers: "correct_answers",
}

# Event kinds: satisfied by an explicit signal
SIGNAL_FIELDS: dict[ChallengeKind, str] = {
    ChallengeKind.daily_login: "logged_in_today",
    ChallengeKind.special_achievement: "unlocked_special_achievement",
}


@dataclass
class MatchResult:
    observed: dict[str, int] = field(default_factory=dict)
    satisfied: list[ChallengeDefinition] = field(default_factory=list)
    ignored: list[IgnoredChallenge] = field(default_factory=list)


def is_level_applicable(definition: ChallengeDefinition, level: UserLevel | str) -> bool:
    if not definition.applicable_levels:
        return True
    level_value = level.value if isinstance(level, UserLevel) else level
    return level_value in definition.applicable_levels


def _parse_kind(raw: str) -> ChallengeKind | None:
    try:
        return ChallengeKind(raw)
    except ValueError:
        return None


def observe(kind: ChallengeKind, snapshot: ProgressSnapshot, signals: EventSignals) -> tuple[int, bool | None]:
    """Return the observed magnitude and, for event kinds, the signal value."""
    if kind in SIGNAL_FIELDS:
        signal = bool(getattr(signals, SIGNAL_FIELDS[kind]))
        return int(signal), signal
    return int(getattr(snapshot, SNAPSHOT_FIELDS[kind])), None


def match_challenges(
    items: Iterable[tuple[ChallengeDefinition, ChallengeProgress]],
    snapshot: ProgressSnapshot,
    signals: EventSignals,
) -> MatchResult:
    """
    Compare each (definition, progress) pair with the snapshot.

    Completed rows are observed but never returned as satisfied again. Rows with
    a kind this build does not understand are reported in ``ignored`` and do not
    stop the rest from being evaluated. ``satisfied`` is ordered by challenge id.
    """
    result = MatchResult()
    for definition, progress in sorted(items, key=lambda item: item[0].id):
        kind = _parse_kind(definition.kind)
        if kind is None:
            result.ignored.append(
                IgnoredChallenge(challenge_id=definition.id, kind=definition.kind, reason="unknown_kind")
            )
            continue

        value, signal = observe(kind, snapshot, signals)
        result.observed[definition.id] = value

        if progress.status == "completed":
            continue
        if signal is None:
            done = value >= definition.target_value
        else:
            done = signal
        if done:
            result.satisfied.append(definition)
    return result
