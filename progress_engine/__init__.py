# ABOUTME: Goal progress & reward engine package; exposes the orchestrator, stores and error types.
# ABOUTME: Use GoalProgressEngine(SqlGoalStore(get_session), SqlRewardStore(get_session)) for API integration.

from progress_engine.engine import GoalProgressEngine, ProgressResult, SessionResult
from progress_engine.errors import (
    GoalArchived,
    GoalNotFound,
    InvalidDelta,
    ProgressConflict,
    ProgressError,
    RequestCancelled,
    StorageUnavailable,
)
from progress_engine.store import SqlGoalStore, SqlRewardStore

__all__ = [
    "GoalArchived",
    "GoalNotFound",
    "GoalProgressEngine",
    "InvalidDelta",
    "ProgressConflict",
    "ProgressError",
    "ProgressResult",
    "RequestCancelled",
    "SessionResult",
    "SqlGoalStore",
    "SqlRewardStore",
    "StorageUnavailable",
]
