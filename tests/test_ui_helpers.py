# ABOUTME: Tests for UI helpers (goal label formatting, milestone input parsing, progress messages).
# ABOUTME: Keeps UI logic testable without running Streamlit.

import pytest

from ui.app import _goal_expander_label, _parse_milestones_input, _progress_messages


def test_goal_expander_label_truncates_long_title():
    goal = {
        "title": "A" * 100,
        "targetType": "hours",
        "currentValue": 2.5,
        "targetValue": 10,
        "progressPercentage": 25.0,
        "status": "active",
    }
    label = _goal_expander_label(goal, max_chars=20)
    assert "…" in label
    assert "2.5/10 h" in label
    assert "25%" in label
    assert "Active" not in label


def test_goal_expander_label_shows_non_active_status():
    goal = {
        "title": "Read 12 books",
        "targetType": "tasks",
        "currentValue": 12,
        "targetValue": 12,
        "progressPercentage": 100.0,
        "status": "completed",
    }
    label = _goal_expander_label(goal)
    assert label.startswith("Read 12 books")
    assert "12/12 tasks" in label
    assert label.endswith("Completed")


def test_parse_milestones_input():
    text = "Quarter way: 5\n\n  Ratio 1:2 done : 10.5  \n"
    assert _parse_milestones_input(text) == [
        {"title": "Quarter way", "targetProgress": 5.0},
        {"title": "Ratio 1:2 done", "targetProgress": 10.5},
    ]
    assert _parse_milestones_input("") == []


@pytest.mark.parametrize(
    "text, message",
    [("no separator", "Line 1"), ("Half: lots", "not a number"), ("ok: 1\nZero: 0", "Line 2")],
)
def test_parse_milestones_input_rejects_bad_lines(text, message):
    with pytest.raises(ValueError, match=message):
        _parse_milestones_input(text)


def test_progress_messages():
    result = {
        "goal": {"title": "Finish the course"},
        "newlyCompletedMilestones": [{"title": "Halfway"}],
        "goalCompleted": True,
        "pointsAwarded": 1075,
        "levelUp": {"newLevel": 7},
        "badgesUnlocked": [{"name": "Goal Getter"}],
    }
    assert _progress_messages(result) == [
        "Milestone reached: Halfway",
        "Goal completed: Finish the course",
        "+1075 points",
        "Level up! You reached level 7",
        "Badge unlocked: Goal Getter",
    ]


def test_progress_messages_empty_for_plain_update():
    assert _progress_messages({"goal": {"title": "x"}, "pointsAwarded": 0, "levelUp": None}) == []
