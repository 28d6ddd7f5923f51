# ABOUTME: Tests for SqlGoalStore and SqlRewardStore on in-memory SQLite: CRUD, ownership and version-guarded writes.
# ABOUTME: The compare-and-swap contract is checked directly, without the engine.

from uuid import uuid4

import pytest

from progress_engine.errors import GoalNotFound
from progress_engine.models import (
    GoalMutation,
    GoalStatus,
    PointsAward,
    ProgressSource,
    RewardMutation,
    TargetType,
)


def _reward_mutation(total_points=10, awards=()):
    return RewardMutation(
        total_points=total_points,
        level=1,
        badges=("first_steps",),
        current_streak=1,
        longest_streak=1,
        total_sessions=1,
        total_hours=0.25,
        goals_completed=0,
        awards=tuple(awards),
    )


def test_create_and_read_goal_with_milestones(goal_store, user):
    goal = goal_store.create(
        user.id,
        "Read the textbook",
        TargetType.TASKS,
        12,
        [("Part one", 4), ("Part two", 8)],
        description="Chapters 1-12",
    )

    snapshot, version = goal_store.read(goal.id)

    assert version == 1
    assert snapshot.user_id == user.id
    assert snapshot.status is GoalStatus.ACTIVE
    assert snapshot.current_value == 0
    assert snapshot.description == "Chapters 1-12"
    assert [(m.title, m.target_progress) for m in snapshot.milestones] == [
        ("Part one", 4),
        ("Part two", 8),
    ]
    assert not any(m.completed for m in snapshot.milestones)


def test_read_missing_goal(goal_store):
    with pytest.raises(GoalNotFound):
        goal_store.read(uuid4())


def test_conditional_write_bumps_version_and_appends_ledger(goal_store, user):
    goal = goal_store.create(user.id, "Study", TargetType.HOURS, 10, [("First hour", 1)])
    milestone_id = goal.milestones[0].id
    mutation = GoalMutation(
        current_value=2,
        delta=2,
        note="evening session",
        completed_milestone_ids=(milestone_id,),
    )

    assert goal_store.conditional_write(goal.id, 1, mutation)

    snapshot, version = goal_store.read(goal.id)
    assert version == 2
    assert snapshot.current_value == 2
    assert snapshot.milestones[0].completed
    assert snapshot.milestones[0].completed_at is not None
    [entry] = goal_store.ledger(goal.id, user.id)
    assert (entry.delta, entry.resulting_value, entry.note) == (2, 2, "evening session")
    assert entry.source is ProgressSource.MANUAL


def test_conditional_write_with_stale_version_changes_nothing(goal_store, user):
    goal = goal_store.create(user.id, "Study", TargetType.HOURS, 10)
    goal_store.conditional_write(goal.id, 1, GoalMutation(current_value=1, delta=1))

    assert not goal_store.conditional_write(goal.id, 1, GoalMutation(current_value=5, delta=5))

    snapshot, version = goal_store.read(goal.id)
    assert (snapshot.current_value, version) == (1, 2)
    assert len(goal_store.ledger(goal.id, user.id)) == 1


def test_conditional_write_completing_goal(goal_store, user):
    goal = goal_store.create(user.id, "Study", TargetType.SESSIONS, 1)

    goal_store.conditional_write(
        goal.id, 1, GoalMutation(current_value=1, delta=1, completes_goal=True)
    )

    snapshot, _ = goal_store.read(goal.id)
    assert snapshot.status is GoalStatus.COMPLETED
    assert snapshot.completed_at is not None
    assert goal_store.active_goals(user.id) == []


def test_get_hides_goals_of_other_users(goal_store, user):
    goal = goal_store.create(user.id, "Mine", TargetType.TASKS, 3)
    with pytest.raises(GoalNotFound):
        goal_store.get(goal.id, uuid4())


def test_list_for_user_paginates(goal_store, user):
    for i in range(3):
        goal_store.create(user.id, f"Goal {i}", TargetType.TASKS, 5)
    goal_store.create(uuid4(), "Someone else's", TargetType.TASKS, 5)

    page, total = goal_store.list_for_user(user.id, limit=2, offset=0)
    rest, _ = goal_store.list_for_user(user.id, limit=2, offset=2)

    assert total == 3
    assert len(page) == 2
    assert len(rest) == 1
    assert {g.title for g in page + rest} == {"Goal 0", "Goal 1", "Goal 2"}


def test_archive_bumps_version(goal_store, user):
    goal = goal_store.create(user.id, "Old goal", TargetType.TASKS, 5)

    archived = goal_store.archive(goal.id, user.id)

    assert archived.status is GoalStatus.ARCHIVED
    _, version = goal_store.read(goal.id)
    assert version == 2
    assert not goal_store.conditional_write(goal.id, 1, GoalMutation(current_value=1, delta=1))


def test_delete_removes_goal_and_history(goal_store, user):
    goal = goal_store.create(user.id, "Temp", TargetType.TASKS, 5, [("One", 1)])
    goal_store.conditional_write(goal.id, 1, GoalMutation(current_value=1, delta=1))

    goal_store.delete(goal.id, user.id)

    with pytest.raises(GoalNotFound):
        goal_store.read(goal.id)


def test_reward_read_creates_default_state(reward_store, user):
    state, version = reward_store.read(user.id)

    assert version == 1
    assert (state.total_points, state.level, state.badges) == (0, 1, frozenset())
    assert reward_store.read(user.id)[1] == 1


def test_reward_conditional_write_and_points_ledger(reward_store, user):
    reward_store.read(user.id)
    award = PointsAward(amount=10, reason="Completed 5 minute study session", source="session")

    assert reward_store.conditional_write(user.id, 1, _reward_mutation(10, [award]))
    assert not reward_store.conditional_write(user.id, 1, _reward_mutation(99))

    state, version = reward_store.read(user.id)
    assert version == 2
    assert state.total_points == 10
    assert state.badges == frozenset({"first_steps"})
    assert state.total_hours == 0.25
    [entry] = reward_store.recent_points(user.id, 10)
    assert (entry.amount, entry.source) == (10, "session")
