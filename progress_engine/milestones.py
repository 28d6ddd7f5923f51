# ABOUTME: Milestone evaluator: pure function deciding which milestones a progress change newly completes.
# ABOUTME: Crossing rule is old < target_progress <= new; already-completed milestones never re-fire.

from typing import Iterable

from progress_engine.models import MilestoneSnapshot


def ordered(milestones: Iterable[MilestoneSnapshot]) -> list[MilestoneSnapshot]:
    """Milestones in ascending target order; creation position breaks ties."""
    return sorted(milestones, key=lambda m: (m.target_progress, m.position))


def evaluate(
    old_value: float, new_value: float, milestones: Iterable[MilestoneSnapshot]
) -> list[MilestoneSnapshot]:
    """Return milestones completed by moving from old_value to new_value, lowest target first.

    A decrease (new_value <= old_value) completes nothing and un-completes nothing.
    """
    if new_value <= old_value:
        return []
    return [
        m
        for m in ordered(milestones)
        if not m.completed and old_value < m.target_progress <= new_value
    ]
