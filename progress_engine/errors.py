# ABOUTME: Error taxonomy for progress updates; each error carries a stable machine-readable code.
# ABOUTME: ProgressConflict, StorageUnavailable and RequestCancelled are retryable by the caller; the rest are terminal.


class ProgressError(Exception):
    """Base class for engine errors surfaced to callers."""

    code = "PROGRESS_ERROR"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class GoalNotFound(ProgressError):
    code = "GOAL_NOT_FOUND"


class GoalArchived(ProgressError):
    code = "GOAL_ARCHIVED"


class InvalidDelta(ProgressError):
    code = "INVALID_DELTA"


class ProgressConflict(ProgressError):
    """Optimistic retries exhausted. progress_committed is True when only the reward update lost."""

    code = "PROGRESS_CONFLICT"
    retryable = True

    def __init__(self, message: str, *, progress_committed: bool = False):
        super().__init__(message)
        self.progress_committed = progress_committed


class StorageUnavailable(ProgressError):
    code = "STORAGE_UNAVAILABLE"
    retryable = True


class RequestCancelled(ProgressError):
    code = "REQUEST_CANCELLED"
    retryable = True
