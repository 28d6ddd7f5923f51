# ABOUTME: Badge rule engine: a catalog of threshold badges and a pure check_unlocks over one stats snapshot.
# ABOUTME: Badges are append-only; evaluation never looks at badges already unlocked.

from dataclasses import dataclass
from typing import Iterable

from progress_engine.models import UserStats


@dataclass(frozen=True)
class Badge:
    """An unlockable achievement: unlocked once stats.<metric> reaches threshold."""

    id: str
    name: str
    description: str
    metric: str
    threshold: float

    def is_satisfied(self, stats: UserStats) -> bool:
        return getattr(stats, self.metric) >= self.threshold


BADGES: tuple[Badge, ...] = (
    # Study sessions
    Badge("first_steps", "First Steps", "Complete your first study session", "total_sessions", 1),
    Badge("getting_started", "Getting Started", "Complete 5 study sessions", "total_sessions", 5),
    Badge("dedicated_learner", "Dedicated Learner", "Complete 25 study sessions", "total_sessions", 25),
    Badge("study_champion", "Study Champion", "Complete 50 study sessions", "total_sessions", 50),
    Badge("study_master", "Study Master", "Complete 100 study sessions", "total_sessions", 100),
    Badge("study_legend", "Study Legend", "Complete 500 study sessions", "total_sessions", 500),
    # Study hours
    Badge("hour_hero", "Hour Hero", "Study for 1 hour total", "total_hours", 1),
    Badge("time_investor", "Time Investor", "Study for 10 hours total", "total_hours", 10),
    Badge("marathon_learner", "Marathon Learner", "Study for 50 hours total", "total_hours", 50),
    Badge("century_club", "Century Club", "Study for 100 hours total", "total_hours", 100),
    # Streaks
    Badge("streak_starter", "Streak Starter", "Study 3 days in a row", "current_streak", 3),
    Badge("week_warrior", "Week Warrior", "Study 7 days in a row", "current_streak", 7),
    Badge("two_week_titan", "Two Week Titan", "Study 14 days in a row", "current_streak", 14),
    Badge("monthly_master", "Monthly Master", "Study 30 days in a row", "current_streak", 30),
    Badge("streak_legend", "Streak Legend", "Study 100 days in a row", "current_streak", 100),
    # Goals
    Badge("goal_getter", "Goal Getter", "Complete your first goal", "goals_completed", 1),
    Badge("goal_crusher", "Goal Crusher", "Complete 5 goals", "goals_completed", 5),
    Badge("goal_master", "Goal Master", "Complete 25 goals", "goals_completed", 25),
    Badge("goal_champion", "Goal Champion", "Complete 50 goals", "goals_completed", 50),
    # Points
    Badge("point_collector", "Point Collector", "Earn 500 points", "total_points", 500),
    Badge("high_scorer", "High Scorer", "Earn 2500 points", "total_points", 2500),
)


def check_unlocks(
    stats: UserStats,
    already_unlocked: Iterable[str],
    catalog: Iterable[Badge] = BADGES,
) -> list[Badge]:
    """Return catalog badges not in already_unlocked whose predicate holds for stats, in catalog order."""
    unlocked = set(already_unlocked)
    return [b for b in catalog if b.id not in unlocked and b.is_satisfied(stats)]


def resolve(badge_ids: Iterable[str]) -> list[Badge]:
    """Catalog entries for the given ids, in catalog order. Unknown ids are skipped."""
    wanted = set(badge_ids)
    return [b for b in BADGES if b.id in wanted]
