# ABOUTME: Tests for the EventBus and NotificationInbox (publish order, failing subscribers, per-user drain).
# ABOUTME: No database.

from uuid import uuid4

from progress_engine.events import (
    BadgeUnlocked,
    EventBus,
    LevelUp,
    MilestoneCompleted,
    NotificationInbox,
    to_notification,
)


def test_bus_delivers_to_every_subscriber_in_order():
    seen = []
    bus = EventBus()
    bus.subscribe(lambda e: seen.append(("a", e)))
    bus.subscribe(lambda e: seen.append(("b", e)))
    event = LevelUp(uuid4(), 3)

    bus.publish(event)

    assert seen == [("a", event), ("b", event)]


def test_failing_subscriber_does_not_block_others():
    seen = []

    def broken(event):
        raise ValueError("boom")

    bus = EventBus()
    bus.subscribe(broken)
    bus.subscribe(seen.append)

    bus.publish(LevelUp(uuid4(), 2))

    assert len(seen) == 1


def test_notification_payload_drops_user_and_stringifies_ids():
    goal_id, milestone_id = uuid4(), uuid4()
    note = to_notification(MilestoneCompleted(uuid4(), goal_id, milestone_id, "Halfway", 25))

    assert note["type"] == "MilestoneCompleted"
    assert note["title"] == "Milestone reached"
    assert note["payload"] == {
        "goal_id": str(goal_id),
        "milestone_id": str(milestone_id),
        "title": "Halfway",
        "target_progress": 25,
    }


def test_inbox_keeps_notifications_per_user_until_drained():
    alice, bob = uuid4(), uuid4()
    inbox = NotificationInbox()
    inbox(LevelUp(alice, 2))
    inbox(BadgeUnlocked(alice, "first_steps", "First Steps", "Complete your first study session"))
    inbox(LevelUp(bob, 4))

    assert [n["type"] for n in inbox.drain(alice)] == ["LevelUp", "BadgeUnlocked"]
    assert inbox.drain(alice) == []
    assert inbox.drain(bob)[0]["payload"] == {"new_level": 4}


def test_inbox_caps_pending_per_user():
    user_id = uuid4()
    inbox = NotificationInbox(max_pending=2)
    for level in (2, 3, 4):
        inbox(LevelUp(user_id, level))

    assert [n["payload"]["new_level"] for n in inbox.drain(user_id)] == [3, 4]
