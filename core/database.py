# ABOUTME: SQLModel tables (users, goals, milestones, progress ledger, reward state, points ledger) and SQLite session factory.
# ABOUTME: get_session yields a session; create_all initializes the schema. Goals and reward rows carry a version column.

import os
from contextlib import contextmanager
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlmodel import Field, Session, SQLModel, create_engine

_db_path = os.environ.get("GOALS_DB_PATH", "goals.db")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    """User account for authentication. Passwords stored as hashes only."""

    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    username: str = Field(unique=True, index=True)
    password_hash: str = Field()
    created_at: datetime = Field(default_factory=utcnow)


class Goal(SQLModel, table=True):
    """Persisted goal record. version is bumped by every conditional write."""

    __tablename__ = "goals"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    title: str
    description: str | None = None
    target_type: str  # hours | sessions | tasks
    target_value: float
    current_value: float = 0.0
    status: str = Field(default="active", index=True)
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


class Milestone(SQLModel, table=True):
    """Sub-target within a goal's progress range. completed only ever goes false -> true."""

    __tablename__ = "milestones"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    goal_id: UUID = Field(foreign_key="goals.id", index=True)
    title: str
    target_progress: float
    position: int = 0
    completed: bool = False
    completed_at: datetime | None = None


class ProgressEntry(SQLModel, table=True):
    """Append-only ledger row: one per applied delta."""

    __tablename__ = "progress_entries"

    id: int | None = Field(default=None, primary_key=True)
    goal_id: UUID = Field(foreign_key="goals.id", index=True)
    delta: float
    resulting_value: float
    note: str | None = None
    source: str = "manual"  # manual | session
    created_at: datetime = Field(default_factory=utcnow)


class UserRewardState(SQLModel, table=True):
    """Points, level, badges and lifetime counters for one user."""

    __tablename__ = "user_reward_states"

    user_id: UUID = Field(foreign_key="users.id", primary_key=True)
    total_points: int = 0
    level: int = 1
    badges: str = "[]"  # JSON array of badge ids
    current_streak: int = 0
    longest_streak: int = 0
    total_sessions: int = 0
    total_hours: float = 0.0
    goals_completed: int = 0
    last_study_date: date | None = None
    version: int = 1
    updated_at: datetime = Field(default_factory=utcnow)


class PointsEntry(SQLModel, table=True):
    """Points ledger row explaining one award."""

    __tablename__ = "points_entries"

    id: int | None = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    amount: int
    reason: str
    source: str  # milestone | goal | session
    related_id: UUID | None = None
    created_at: datetime = Field(default_factory=utcnow)


_engine = create_engine(
    f"sqlite:///{_db_path}",
    connect_args={"check_same_thread": False},
)


def init_db() -> None:
    """Create all tables if they do not exist."""
    SQLModel.metadata.create_all(_engine)


@contextmanager
def get_session():
    """Yield an SQLite session for the default engine."""
    init_db()
    with Session(_engine) as session:
        yield session
