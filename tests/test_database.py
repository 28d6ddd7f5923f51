# ABOUTME: Pytest tests for the SQLModel tables on in-memory SQLite.
# ABOUTME: Verifies defaults for goals, milestones and reward state, and that ledger rows round-trip.

from uuid import uuid4

import pytest
from sqlmodel import Session, select

from core.database import Goal, Milestone, PointsEntry, ProgressEntry, UserRewardState


@pytest.fixture
def session(in_memory_engine):
    """Yield a session that uses the in-memory engine."""
    with Session(in_memory_engine) as session:
        yield session


def test_goal_defaults(session, user):
    goal = Goal(user_id=user.id, title="Learn SQL", target_type="hours", target_value=20)
    session.add(goal)
    session.commit()
    session.refresh(goal)

    read = session.get(Goal, goal.id)
    assert read.current_value == 0.0
    assert read.status == "active"
    assert read.version == 1
    assert read.completed_at is None
    assert read.created_at is not None


def test_milestones_belong_to_goal(session, user):
    goal = Goal(user_id=user.id, title="Learn SQL", target_type="tasks", target_value=10)
    session.add(goal)
    session.flush()
    session.add(Milestone(goal_id=goal.id, title="Joins", target_progress=5, position=0))
    session.commit()

    [milestone] = session.exec(select(Milestone).where(Milestone.goal_id == goal.id)).all()
    assert milestone.title == "Joins"
    assert milestone.completed is False


def test_progress_entries_get_increasing_ids(session, user):
    goal_id = uuid4()
    session.add(ProgressEntry(goal_id=goal_id, delta=2, resulting_value=2))
    session.add(ProgressEntry(goal_id=goal_id, delta=-1, resulting_value=1, source="session"))
    session.commit()

    rows = session.exec(select(ProgressEntry).order_by(ProgressEntry.id)).all()
    assert [(r.delta, r.source) for r in rows] == [(2, "manual"), (-1, "session")]
    assert rows[0].id < rows[1].id


def test_reward_state_defaults(session, user):
    session.add(UserRewardState(user_id=user.id))
    session.add(PointsEntry(user_id=user.id, amount=25, reason="Reached milestone: Joins", source="milestone"))
    session.commit()

    state = session.get(UserRewardState, user.id)
    assert (state.total_points, state.level, state.badges, state.version) == (0, 1, "[]", 1)
    assert state.last_study_date is None
    assert session.exec(select(PointsEntry)).one().amount == 25
