# ABOUTME: Domain events emitted after a committed progress update, an in-process EventBus and a per-user inbox.
# ABOUTME: Subscribers run after commit; a failing subscriber is logged and never fails the update.

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable
from uuid import UUID


@dataclass(frozen=True)
class MilestoneCompleted:
    user_id: UUID
    goal_id: UUID
    milestone_id: UUID
    title: str
    target_progress: float


@dataclass(frozen=True)
class GoalCompleted:
    user_id: UUID
    goal_id: UUID
    title: str
    points_awarded: int


@dataclass(frozen=True)
class LevelUp:
    user_id: UUID
    new_level: int


@dataclass(frozen=True)
class BadgeUnlocked:
    user_id: UUID
    badge_id: str
    name: str
    description: str


DomainEvent = MilestoneCompleted | GoalCompleted | LevelUp | BadgeUnlocked
Subscriber = Callable[[DomainEvent], None]


class EventBus:
    """Synchronous publish/subscribe for domain events."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def publish(self, event: DomainEvent) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:
                logging.exception("event subscriber failed for %s", type(event).__name__)


_NOTIFICATION_TITLES = {
    MilestoneCompleted: "Milestone reached",
    GoalCompleted: "Goal completed",
    LevelUp: "Level up",
    BadgeUnlocked: "Badge unlocked",
}


def to_notification(event: DomainEvent) -> dict:
    """Flatten an event into the JSON shape the client renders as a toast."""
    payload = {
        k: (str(v) if isinstance(v, UUID) else v)
        for k, v in asdict(event).items()
        if k != "user_id"
    }
    return {
        "type": type(event).__name__,
        "title": _NOTIFICATION_TITLES[type(event)],
        "payload": payload,
    }


class NotificationInbox:
    """Pending notifications per user, filled by subscribing to an EventBus and drained by the API."""

    def __init__(self, max_pending: int = 50) -> None:
        self._pending: dict[UUID, list[dict]] = {}
        self._lock = threading.Lock()
        self._max_pending = max_pending

    def __call__(self, event: DomainEvent) -> None:
        note = to_notification(event)
        with self._lock:
            queue = self._pending.setdefault(event.user_id, [])
            queue.append(note)
            del queue[: -self._max_pending]

    def drain(self, user_id: UUID) -> list[dict]:
        with self._lock:
            return self._pending.pop(user_id, [])
