# ABOUTME: Engine execution telemetry: one structured JSON log line per progress/session run.
# ABOUTME: Records latency, write attempts, what the run changed and the error code on failure.

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from uuid import UUID


@dataclass
class TelemetryLogEntry:
    """Structured telemetry entry for one engine run."""

    timestamp: str
    operation: str
    subject_id: str
    latency_ms: float
    attempts: int
    success: bool
    applied: bool
    milestones_completed: int
    goal_completed: bool
    points_awarded: int
    error_code: str | None

    @property
    def conflicts(self) -> int:
        """Lost optimistic races: every attempt but the successful one."""
        if self.success:
            return max(0, self.attempts - 1)
        return self.attempts

    def to_json(self) -> str:
        payload = asdict(self)
        payload["latency_ms"] = round(self.latency_ms, 2)
        payload["conflicts"] = self.conflicts
        return json.dumps(payload)


def log_run(
    *,
    operation: str,
    subject_id: UUID,
    latency_ms: float,
    attempts: int,
    success: bool,
    applied: bool = False,
    milestones_completed: int = 0,
    goal_completed: bool = False,
    points_awarded: int = 0,
    error_code: str | None = None,
) -> None:
    """Print a structured JSON log line to stdout for one engine run."""
    entry = TelemetryLogEntry(
        timestamp=datetime.now(tz=timezone.utc).isoformat(),
        operation=operation,
        subject_id=str(subject_id),
        latency_ms=latency_ms,
        attempts=attempts,
        success=success,
        applied=applied,
        milestones_completed=milestones_completed,
        goal_completed=goal_completed,
        points_awarded=points_awarded,
        error_code=error_code,
    )
    print(entry.to_json(), flush=True)
