# ABOUTME: Reward calculator: policy table, points per event, level staircase, streak rule and batch settlement.
# ABOUTME: Everything here is pure; settle_rewards turns a reward snapshot plus events into a RewardMutation.

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID

from core import config
from progress_engine.badges import BADGES, Badge, check_unlocks
from progress_engine.models import (
    PointsAward,
    RewardMutation,
    RewardSnapshot,
    TargetType,
    UserStats,
)


class RewardKind(str, Enum):
    MILESTONE = "milestone"
    GOAL_COMPLETION = "goal"
    SESSION = "session"


@dataclass(frozen=True)
class RewardEvent:
    """A completion worth points. weight is target_value for goals and minutes for sessions."""

    kind: RewardKind
    weight: float = 0.0
    target_type: TargetType | None = None
    label: str = ""
    related_id: UUID | None = None


def _default_completion_bonus() -> dict[TargetType, int]:
    return {TargetType.HOURS: 5, TargetType.SESSIONS: 10, TargetType.TASKS: 10}


@dataclass(frozen=True)
class RewardPolicy:
    milestone_points: int = 25
    goal_completion_points: int = 50
    completion_bonus_per_unit: dict[TargetType, int] = field(
        default_factory=_default_completion_bonus
    )
    session_points_per_minute: int = 2
    # (minimum minutes, bonus), checked longest first
    session_bonus_tiers: tuple[tuple[int, int], ...] = ((60, 20), (30, 10))
    level_base_points: int = 100
    level_growth: float = 1.2

    @classmethod
    def from_config(cls) -> "RewardPolicy":
        return cls(
            milestone_points=config.MILESTONE_POINTS,
            goal_completion_points=config.GOAL_COMPLETION_POINTS,
            session_points_per_minute=config.SESSION_POINTS_PER_MINUTE,
            level_base_points=config.LEVEL_BASE_POINTS,
            level_growth=config.LEVEL_GROWTH,
        )


DEFAULT_POLICY = RewardPolicy()


@dataclass(frozen=True)
class RewardOutcome:
    points: int
    leveled_up: bool
    new_level: int | None = None


@dataclass(frozen=True)
class LevelChange:
    previous_level: int
    new_level: int


@dataclass(frozen=True)
class RewardSettlement:
    mutation: RewardMutation
    points_awarded: int
    level_up: LevelChange | None
    badges_unlocked: tuple[Badge, ...]


def _level_step(level: int, policy: RewardPolicy) -> int:
    """Points needed to go from level to level + 1."""
    raw = policy.level_base_points * policy.level_growth ** (level - 1)
    # round first so 100 * 1.2**2 floors to 144, not 143
    return max(1, math.floor(round(raw, 6)))


def level_threshold(level: int, policy: RewardPolicy = DEFAULT_POLICY) -> int:
    """Total points required to be at level (level 1 needs 0)."""
    return sum(_level_step(k, policy) for k in range(1, level))


def level_for_points(total_points: int, policy: RewardPolicy = DEFAULT_POLICY) -> int:
    """Largest level L with level_threshold(L) <= total_points."""
    level, threshold = 1, 0
    while True:
        step = _level_step(level, policy)
        if threshold + step > total_points:
            return level
        threshold += step
        level += 1


def points_to_next_level(total_points: int, policy: RewardPolicy = DEFAULT_POLICY) -> int:
    level = level_for_points(total_points, policy)
    return level_threshold(level + 1, policy) - total_points


def session_points(minutes: float, policy: RewardPolicy = DEFAULT_POLICY) -> int:
    points = math.floor(minutes * policy.session_points_per_minute)
    for min_minutes, bonus in policy.session_bonus_tiers:
        if minutes >= min_minutes:
            return points + bonus
    return points


def event_points(event: RewardEvent, policy: RewardPolicy = DEFAULT_POLICY) -> int:
    if event.kind is RewardKind.MILESTONE:
        return policy.milestone_points
    if event.kind is RewardKind.GOAL_COMPLETION:
        per_unit = policy.completion_bonus_per_unit.get(event.target_type, 0)
        return policy.goal_completion_points + math.floor(per_unit * event.weight)
    return session_points(event.weight, policy)


def calculate(
    event: RewardEvent,
    total_points: int,
    level: int,
    policy: RewardPolicy = DEFAULT_POLICY,
) -> RewardOutcome:
    """Points for one event and whether they lift the user past their stored level."""
    points = event_points(event, policy)
    recomputed = level_for_points(total_points + points, policy)
    if recomputed > level:
        return RewardOutcome(points=points, leveled_up=True, new_level=recomputed)
    return RewardOutcome(points=points, leveled_up=False)


def advance_streak(
    current: int, longest: int, last_study_date: date | None, today: date
) -> tuple[int, int]:
    """Daily streak rule: same day unchanged, next day +1, any gap (or first session) restarts at 1."""
    if last_study_date is None:
        current = 1
    else:
        days = (today - last_study_date).days
        if days == 1:
            current += 1
        elif days > 1:
            current = 1
        elif current == 0:
            current = 1
    return current, max(longest, current)


def _award_reason(event: RewardEvent) -> str:
    if event.kind is RewardKind.MILESTONE:
        return f"Reached milestone: {event.label}"
    if event.kind is RewardKind.GOAL_COMPLETION:
        return f"Completed goal: {event.label}"
    return f"Completed {math.floor(event.weight)} minute study session"


def settle_rewards(
    state: RewardSnapshot,
    events: Sequence[RewardEvent],
    policy: RewardPolicy = DEFAULT_POLICY,
    *,
    today: date | None = None,
    catalog: Iterable[Badge] = BADGES,
) -> RewardSettlement:
    """Fold events into state: points, counters, streak, level and badges, all from one snapshot."""
    total, level = state.total_points, state.level
    awards = []
    for event in events:
        outcome = calculate(event, total, level, policy)
        total += outcome.points
        if outcome.leveled_up:
            level = outcome.new_level
        if outcome.points:
            awards.append(
                PointsAward(
                    amount=outcome.points,
                    reason=_award_reason(event),
                    source=event.kind.value,
                    related_id=event.related_id,
                )
            )

    sessions = [e for e in events if e.kind is RewardKind.SESSION]
    goals_completed = state.goals_completed + sum(
        1 for e in events if e.kind is RewardKind.GOAL_COMPLETION
    )
    current_streak, longest_streak = state.current_streak, state.longest_streak
    last_study_date = state.last_study_date
    if sessions and today is not None:
        current_streak, longest_streak = advance_streak(
            current_streak, longest_streak, last_study_date, today
        )
        last_study_date = today
    total_hours = round(state.total_hours + sum(e.weight for e in sessions) / 60, 4)

    stats = UserStats(
        current_streak=current_streak,
        longest_streak=longest_streak,
        total_sessions=state.total_sessions + len(sessions),
        total_hours=total_hours,
        total_points=total,
        goals_completed=goals_completed,
    )
    new_badges = tuple(check_unlocks(stats, state.badges, catalog))
    mutation = RewardMutation(
        total_points=total,
        level=level,
        badges=tuple(sorted(state.badges | {b.id for b in new_badges})),
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        total_sessions=stats.total_sessions,
        total_hours=stats.total_hours,
        goals_completed=stats.goals_completed,
        last_study_date=last_study_date,
        awards=tuple(awards),
    )
    level_up = LevelChange(state.level, level) if level > state.level else None
    return RewardSettlement(
        mutation=mutation,
        points_awarded=total - state.total_points,
        level_up=level_up,
        badges_unlocked=new_badges,
    )
