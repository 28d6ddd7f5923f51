# ABOUTME: Pydantic models for API request bodies and camelCase response bodies (goals, progress, sessions, rewards).
# ABOUTME: Response models read engine snapshots via from_attributes; FastAPI serializes them by alias.

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from core.config import (
    MAX_DESCRIPTION_LENGTH,
    MAX_MILESTONES_PER_GOAL,
    MAX_NOTE_LENGTH,
    MAX_TITLE_LENGTH,
)
from progress_engine.models import GoalStatus, ProgressSource, TargetType


class ApiModel(BaseModel):
    """Base for bodies exchanged with the client: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class MilestoneCreate(ApiModel):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    target_progress: float = Field(gt=0)


class GoalCreateRequest(ApiModel):
    title: str = Field(min_length=1, max_length=MAX_TITLE_LENGTH)
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)
    target_type: TargetType
    target_value: float = Field(gt=0, allow_inf_nan=False)
    milestones: list[MilestoneCreate] = Field(
        default_factory=list, max_length=MAX_MILESTONES_PER_GOAL
    )

    @model_validator(mode="after")
    def _milestones_within_target(self):
        for m in self.milestones:
            if m.target_progress > self.target_value:
                raise ValueError(
                    f"Milestone '{m.title}' target {m.target_progress} exceeds goal target {self.target_value}"
                )
        return self


class ProgressRequest(ApiModel):
    delta: float
    note: str | None = Field(default=None, max_length=MAX_NOTE_LENGTH)


class SessionRequest(ApiModel):
    duration_seconds: float = Field(gt=0, allow_inf_nan=False)
    subject: str | None = Field(default=None, max_length=MAX_TITLE_LENGTH)


class MilestoneOut(ApiModel):
    id: UUID
    title: str
    target_progress: float
    completed: bool
    completed_at: datetime | None = None


class GoalOut(ApiModel):
    id: UUID
    title: str
    description: str | None = None
    target_type: TargetType
    target_value: float
    current_value: float
    progress_percentage: float
    status: GoalStatus
    milestones: list[MilestoneOut]
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None


class GoalListResponse(ApiModel):
    goals: list[GoalOut]
    total: int


class ProgressEntryOut(ApiModel):
    delta: float
    resulting_value: float
    note: str | None = None
    source: ProgressSource
    created_at: datetime


class LevelUpOut(ApiModel):
    new_level: int


class BadgeOut(ApiModel):
    id: str
    name: str
    description: str


class ProgressResponse(ApiModel):
    goal: GoalOut
    newly_completed_milestones: list[MilestoneOut]
    goal_completed: bool
    points_awarded: int
    level_up: LevelUpOut | None = None
    badges_unlocked: list[BadgeOut]
    applied: bool


class SessionResponse(ApiModel):
    points_awarded: int
    level_up: LevelUpOut | None = None
    badges_unlocked: list[BadgeOut]
    goal_updates: list[ProgressResponse]
    goals_not_updated: list[UUID] = []


class PointsEntryOut(ApiModel):
    amount: int
    reason: str
    source: str
    created_at: datetime


class RewardProfileResponse(ApiModel):
    total_points: int
    level: int
    points_to_next_level: int
    level_progress: int
    current_streak: int
    longest_streak: int
    total_sessions: int
    total_hours: float
    goals_completed: int
    badges: list[BadgeOut]
    recent_points: list[PointsEntryOut]
