# ABOUTME: Unit tests for the reward calculator: policy points, level staircase, streak rule and settlement.
# ABOUTME: Pure function tests; no database.

from datetime import date, timedelta
from uuid import uuid4

import pytest

from progress_engine.models import RewardSnapshot, TargetType
from progress_engine.rewards import (
    LevelChange,
    RewardEvent,
    RewardKind,
    RewardPolicy,
    advance_streak,
    calculate,
    event_points,
    level_for_points,
    level_threshold,
    points_to_next_level,
    session_points,
    settle_rewards,
)


def _goal_event(target_value, target_type=TargetType.TASKS):
    return RewardEvent(
        kind=RewardKind.GOAL_COMPLETION,
        weight=target_value,
        target_type=target_type,
        label="Finish the course",
        related_id=uuid4(),
    )


def _milestone_event():
    return RewardEvent(kind=RewardKind.MILESTONE, weight=25, label="Halfway", related_id=uuid4())


def test_level_thresholds_follow_staircase():
    assert [level_threshold(level) for level in range(1, 6)] == [0, 100, 220, 364, 536]


@pytest.mark.parametrize(
    "points, level", [(0, 1), (99, 1), (100, 2), (219, 2), (220, 3), (363, 3), (364, 4)]
)
def test_level_for_points(points, level):
    assert level_for_points(points) == level


def test_level_is_deterministic_and_monotonic():
    levels = [level_for_points(p) for p in range(0, 3000, 7)]
    assert levels == [level_for_points(p) for p in range(0, 3000, 7)]
    assert levels == sorted(levels)


def test_points_to_next_level():
    assert points_to_next_level(0) == 100
    assert points_to_next_level(150) == 70


@pytest.mark.parametrize(
    "minutes, points", [(25, 50), (29.9, 59), (30, 70), (45.5, 101), (60, 140)]
)
def test_session_points_include_duration_bonus(minutes, points):
    assert session_points(minutes) == points


def test_goal_completion_award_scales_with_target():
    assert event_points(_goal_event(100)) == 50 + 10 * 100
    assert event_points(_goal_event(10, TargetType.HOURS)) == 50 + 5 * 10


def test_policy_table_drives_points():
    policy = RewardPolicy(milestone_points=10, goal_completion_points=0, completion_bonus_per_unit={})
    assert event_points(_milestone_event(), policy) == 10
    assert event_points(_goal_event(100), policy) == 0


def test_calculate_reports_level_up_past_stored_level():
    outcome = calculate(_milestone_event(), total_points=90, level=1)
    assert outcome.points == 25
    assert outcome.leveled_up
    assert outcome.new_level == 2


def test_calculate_without_level_up():
    outcome = calculate(_milestone_event(), total_points=0, level=1)
    assert outcome.points == 25
    assert not outcome.leveled_up
    assert outcome.new_level is None


def test_streak_rules():
    today = date(2026, 3, 10)
    assert advance_streak(0, 0, None, today) == (1, 1)
    assert advance_streak(4, 6, today - timedelta(days=1), today) == (5, 6)
    assert advance_streak(6, 6, today - timedelta(days=1), today) == (7, 7)
    assert advance_streak(4, 6, today, today) == (4, 6)
    assert advance_streak(9, 9, today - timedelta(days=3), today) == (1, 9)


def test_settle_session_updates_counters_streak_and_first_badges():
    state = RewardSnapshot(user_id=uuid4())
    today = date(2026, 3, 10)
    settlement = settle_rewards(
        state, [RewardEvent(kind=RewardKind.SESSION, weight=30)], today=today
    )
    m = settlement.mutation
    assert settlement.points_awarded == 70
    assert m.total_points == 70
    assert m.total_sessions == 1
    assert m.total_hours == 0.5
    assert (m.current_streak, m.longest_streak, m.last_study_date) == (1, 1, today)
    assert settlement.level_up is None
    assert [b.id for b in settlement.badges_unlocked] == ["first_steps"]
    assert m.badges == ("first_steps",)
    assert len(m.awards) == 1 and m.awards[0].source == "session"


def test_settle_goal_completion_levels_up_and_counts_goal():
    state = RewardSnapshot(user_id=uuid4(), total_points=90, level=1)
    settlement = settle_rewards(state, [_milestone_event(), _goal_event(10, TargetType.HOURS)])
    assert settlement.points_awarded == 25 + 100
    assert settlement.mutation.total_points == 215
    assert settlement.level_up == LevelChange(previous_level=1, new_level=2)
    assert settlement.mutation.goals_completed == 1
    assert "goal_getter" in {b.id for b in settlement.badges_unlocked}
    assert [a.source for a in settlement.mutation.awards] == ["milestone", "goal"]


def test_settle_without_today_leaves_streak_alone():
    state = RewardSnapshot(user_id=uuid4(), current_streak=3, longest_streak=5)
    settlement = settle_rewards(state, [RewardEvent(kind=RewardKind.SESSION, weight=10)])
    assert settlement.mutation.current_streak == 3
    assert settlement.mutation.last_study_date is None


def test_settle_keeps_existing_badges():
    state = RewardSnapshot(user_id=uuid4(), badges=frozenset({"first_steps"}), total_sessions=1)
    settlement = settle_rewards(
        state, [RewardEvent(kind=RewardKind.SESSION, weight=10)], today=date(2026, 3, 10)
    )
    assert settlement.badges_unlocked == ()
    assert settlement.mutation.badges == ("first_steps",)
