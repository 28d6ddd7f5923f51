# ABOUTME: Immutable snapshots the engine and its pure calculators work on (goals, milestones, reward state).
# ABOUTME: Mutations describe what a conditional write should persist; stores translate them to rows.

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class TargetType(str, Enum):
    HOURS = "hours"
    SESSIONS = "sessions"
    TASKS = "tasks"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ProgressSource(str, Enum):
    MANUAL = "manual"
    SESSION = "session"


@dataclass(frozen=True)
class MilestoneSnapshot:
    id: UUID
    title: str
    target_progress: float
    position: int = 0
    completed: bool = False
    completed_at: datetime | None = None


@dataclass(frozen=True)
class GoalSnapshot:
    id: UUID
    user_id: UUID
    title: str
    target_type: TargetType
    target_value: float
    current_value: float
    status: GoalStatus
    milestones: tuple[MilestoneSnapshot, ...] = ()
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def progress_percentage(self) -> float:
        if self.target_value <= 0:
            return 0.0
        return min(100.0, round(self.current_value / self.target_value * 100, 1))


@dataclass(frozen=True)
class ProgressEntrySnapshot:
    goal_id: UUID
    delta: float
    resulting_value: float
    note: str | None
    source: ProgressSource
    created_at: datetime


@dataclass(frozen=True)
class GoalMutation:
    """Everything one progress update persists, applied in a single transaction."""

    current_value: float
    delta: float
    note: str | None = None
    source: ProgressSource = ProgressSource.MANUAL
    completed_milestone_ids: tuple[UUID, ...] = ()
    completes_goal: bool = False
    at: datetime | None = None


@dataclass(frozen=True)
class UserStats:
    """Aggregate counters badge predicates read. One frozen snapshot per evaluation."""

    current_streak: int = 0
    longest_streak: int = 0
    total_sessions: int = 0
    total_hours: float = 0.0
    total_points: int = 0
    goals_completed: int = 0


@dataclass(frozen=True)
class RewardSnapshot:
    user_id: UUID
    total_points: int = 0
    level: int = 1
    badges: frozenset[str] = frozenset()
    current_streak: int = 0
    longest_streak: int = 0
    total_sessions: int = 0
    total_hours: float = 0.0
    goals_completed: int = 0
    last_study_date: date | None = None


@dataclass(frozen=True)
class PointsAward:
    amount: int
    reason: str
    source: str
    related_id: UUID | None = None


@dataclass(frozen=True)
class RewardMutation:
    total_points: int
    level: int
    badges: tuple[str, ...]
    current_streak: int
    longest_streak: int
    total_sessions: int
    total_hours: float
    goals_completed: int
    last_study_date: date | None = None
    awards: tuple[PointsAward, ...] = field(default_factory=tuple)
