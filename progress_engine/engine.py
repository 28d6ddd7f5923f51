# ABOUTME: Goal progress engine: applies a delta to a goal with optimistic concurrency, then settles rewards.
# ABOUTME: apply_progress() and record_session() return composite results, publish domain events and log telemetry.

import logging
import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Sequence
from uuid import UUID

from core import config
from core.telemetry import log_run
from progress_engine import events as ev
from progress_engine.badges import Badge
from progress_engine.errors import (
    GoalArchived,
    GoalNotFound,
    InvalidDelta,
    ProgressConflict,
    ProgressError,
    RequestCancelled,
    StorageUnavailable,
)
from progress_engine.milestones import evaluate
from progress_engine.models import (
    GoalMutation,
    GoalSnapshot,
    GoalStatus,
    MilestoneSnapshot,
    ProgressSource,
    TargetType,
)
from progress_engine.rewards import (
    LevelChange,
    RewardEvent,
    RewardKind,
    RewardPolicy,
    RewardSettlement,
    event_points,
    settle_rewards,
)
from progress_engine.store import GoalStore, RewardStore

AbortCheck = Callable[[], bool]


@dataclass(frozen=True)
class ProgressPlan:
    """What one attempt would commit, computed from a single goal snapshot."""

    old_value: float
    new_value: float
    newly_completed: tuple[MilestoneSnapshot, ...]
    completes_goal: bool

    @property
    def changed(self) -> bool:
        return self.new_value != self.old_value


@dataclass(frozen=True)
class ProgressResult:
    goal: GoalSnapshot
    newly_completed_milestones: tuple[MilestoneSnapshot, ...] = ()
    goal_completed: bool = False
    points_awarded: int = 0
    level_up: LevelChange | None = None
    badges_unlocked: tuple[Badge, ...] = ()
    applied: bool = True
    attempts: int = 1


@dataclass(frozen=True)
class SessionResult:
    user_id: UUID
    points_awarded: int
    level_up: LevelChange | None
    badges_unlocked: tuple[Badge, ...]
    goal_results: tuple[ProgressResult, ...]
    goals_not_updated: tuple[UUID, ...] = ()


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def plan_progress(goal: GoalSnapshot, delta: float) -> ProgressPlan:
    """Clamp the new value into [0, target] and decide which milestones and completion it triggers."""
    old_value = goal.current_value
    new_value = clamp(round(old_value + delta, 6), 0.0, goal.target_value)
    newly_completed = tuple(evaluate(old_value, new_value, goal.milestones))
    completes_goal = (
        goal.status is not GoalStatus.COMPLETED
        and old_value < goal.target_value <= new_value
    )
    return ProgressPlan(old_value, new_value, newly_completed, completes_goal)


def _finite_number(value, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidDelta(f"{label} must be a finite number.")
    return float(value)


def _advance(goal: GoalSnapshot, plan: ProgressPlan, at: datetime) -> GoalSnapshot:
    """The goal as it looks after plan was committed, without a second read."""
    completed_ids = {m.id for m in plan.newly_completed}
    milestones = tuple(
        MilestoneSnapshot(
            id=m.id,
            title=m.title,
            target_progress=m.target_progress,
            position=m.position,
            completed=m.completed or m.id in completed_ids,
            completed_at=at if m.id in completed_ids else m.completed_at,
        )
        for m in goal.milestones
    )
    return GoalSnapshot(
        id=goal.id,
        user_id=goal.user_id,
        title=goal.title,
        description=goal.description,
        target_type=goal.target_type,
        target_value=goal.target_value,
        current_value=plan.new_value,
        status=GoalStatus.COMPLETED if plan.completes_goal else goal.status,
        milestones=milestones,
        created_at=goal.created_at,
        updated_at=at,
        completed_at=at if plan.completes_goal else goal.completed_at,
    )


class GoalProgressEngine:
    """Orchestrates progress updates against injected goal and reward stores."""

    def __init__(
        self,
        goals: GoalStore,
        rewards: RewardStore,
        *,
        bus: ev.EventBus | None = None,
        policy: RewardPolicy | None = None,
        max_attempts: int = config.PROGRESS_MAX_ATTEMPTS,
    ):
        self.goals = goals
        self.rewards = rewards
        self.bus = bus or ev.EventBus()
        self.policy = policy or RewardPolicy.from_config()
        self.max_attempts = max(1, max_attempts)

    def apply_progress(
        self,
        user_id: UUID,
        goal_id: UUID,
        delta: float,
        note: str | None = None,
        *,
        source: ProgressSource = ProgressSource.MANUAL,
        should_abort: AbortCheck | None = None,
    ) -> ProgressResult:
        """Apply delta to the goal exactly once and settle any milestone/goal rewards it triggers."""
        start = time.perf_counter()
        attempts = 0
        try:
            delta = _finite_number(delta, "Delta")
            goal, plan, attempts = self._commit_progress(
                user_id, goal_id, delta, note, source, should_abort
            )
            if plan is None:
                result = ProgressResult(goal=goal, applied=False, attempts=attempts)
            else:
                result = self._reward_progress(user_id, goal, plan, attempts)
        except ProgressError as exc:
            log_run(
                operation="apply_progress",
                subject_id=goal_id,
                latency_ms=(time.perf_counter() - start) * 1000,
                attempts=self.max_attempts if isinstance(exc, ProgressConflict) else attempts,
                success=False,
                error_code=exc.code,
            )
            raise
        log_run(
            operation="apply_progress",
            subject_id=goal_id,
            latency_ms=(time.perf_counter() - start) * 1000,
            attempts=result.attempts,
            success=True,
            applied=result.applied,
            milestones_completed=len(result.newly_completed_milestones),
            goal_completed=result.goal_completed,
            points_awarded=result.points_awarded,
        )
        return result

    def _commit_progress(
        self,
        user_id: UUID,
        goal_id: UUID,
        delta: float,
        note: str | None,
        source: ProgressSource,
        should_abort: AbortCheck | None,
    ) -> tuple[GoalSnapshot, ProgressPlan | None, int]:
        for attempt in range(1, self.max_attempts + 1):
            if should_abort is not None and should_abort():
                raise RequestCancelled("Request cancelled before progress was written.")
            goal, version = self.goals.read(goal_id)
            if goal.user_id != user_id:
                raise GoalNotFound(f"Goal {goal_id} not found.")
            if goal.status is GoalStatus.ARCHIVED:
                raise GoalArchived(f"Goal {goal_id} is archived.")
            plan = plan_progress(goal, delta)
            if not plan.changed:
                return goal, None, attempt
            mutation = GoalMutation(
                current_value=plan.new_value,
                delta=delta,
                note=note,
                source=source,
                completed_milestone_ids=tuple(m.id for m in plan.newly_completed),
                completes_goal=plan.completes_goal,
                at=datetime.now(timezone.utc),
            )
            if self.goals.conditional_write(goal_id, version, mutation):
                return _advance(goal, plan, mutation.at), plan, attempt
            logging.info(
                "progress write lost race on goal %s (version %s, attempt %s/%s)",
                goal_id,
                version,
                attempt,
                self.max_attempts,
            )
        raise ProgressConflict(
            f"Goal {goal_id} kept changing; gave up after {self.max_attempts} attempts."
        )

    def _reward_progress(
        self, user_id: UUID, goal: GoalSnapshot, plan: ProgressPlan, attempts: int
    ) -> ProgressResult:
        reward_events = [
            RewardEvent(
                kind=RewardKind.MILESTONE,
                weight=m.target_progress,
                target_type=goal.target_type,
                label=m.title,
                related_id=m.id,
            )
            for m in plan.newly_completed
        ]
        goal_event = None
        if plan.completes_goal:
            goal_event = RewardEvent(
                kind=RewardKind.GOAL_COMPLETION,
                weight=goal.target_value,
                target_type=goal.target_type,
                label=goal.title,
                related_id=goal.id,
            )
            reward_events.append(goal_event)

        # Milestone and goal facts are final once the goal write commits.
        for m in plan.newly_completed:
            self.bus.publish(
                ev.MilestoneCompleted(user_id, goal.id, m.id, m.title, m.target_progress)
            )
        if goal_event is not None:
            self.bus.publish(
                ev.GoalCompleted(
                    user_id, goal.id, goal.title, event_points(goal_event, self.policy)
                )
            )

        settlement = None
        if reward_events:
            settlement = self._settle(user_id, reward_events)
            self._publish_rewards(user_id, settlement)

        return ProgressResult(
            goal=goal,
            newly_completed_milestones=plan.newly_completed,
            goal_completed=plan.completes_goal,
            points_awarded=settlement.points_awarded if settlement else 0,
            level_up=settlement.level_up if settlement else None,
            badges_unlocked=settlement.badges_unlocked if settlement else (),
            applied=True,
            attempts=attempts,
        )

    def _settle(
        self,
        user_id: UUID,
        reward_events: Sequence[RewardEvent],
        today: date | None = None,
        *,
        goal_committed: bool = True,
    ) -> RewardSettlement:
        """Fold reward events into the user's reward state with the same bounded optimistic retry."""
        for attempt in range(1, self.max_attempts + 1):
            state, version = self.rewards.read(user_id)
            settlement = settle_rewards(state, reward_events, self.policy, today=today)
            if self.rewards.conditional_write(user_id, version, settlement.mutation):
                return settlement
            logging.info(
                "reward write lost race for user %s (version %s, attempt %s/%s)",
                user_id,
                version,
                attempt,
                self.max_attempts,
            )
        raise ProgressConflict(
            f"Reward state for user {user_id} kept changing; gave up after {self.max_attempts} attempts.",
            progress_committed=goal_committed,
        )

    def _publish_rewards(self, user_id: UUID, settlement: RewardSettlement) -> None:
        if settlement.level_up is not None:
            self.bus.publish(ev.LevelUp(user_id, settlement.level_up.new_level))
        for badge in settlement.badges_unlocked:
            self.bus.publish(ev.BadgeUnlocked(user_id, badge.id, badge.name, badge.description))

    def record_session(
        self,
        user_id: UUID,
        duration_seconds: float,
        subject: str | None = None,
        *,
        today: date | None = None,
        should_abort: AbortCheck | None = None,
    ) -> SessionResult:
        """Credit a finished study session: points, streak and badges, then auto-progress on active goals.

        should_abort is only honoured before the session is credited. Once the reward write commits,
        goal updates that fail are reported in goals_not_updated instead of failing the call, so a
        caller never replays a session that was already counted.
        """
        start = time.perf_counter()
        try:
            duration = _finite_number(duration_seconds, "Session duration")
            if duration <= 0:
                raise InvalidDelta("Session duration must be positive.")
            if should_abort is not None and should_abort():
                raise RequestCancelled("Request cancelled before the session was recorded.")
            session_event = RewardEvent(kind=RewardKind.SESSION, weight=duration / 60)
            settlement = self._settle(
                user_id, [session_event], today or date.today(), goal_committed=False
            )
        except ProgressError as exc:
            log_run(
                operation="record_session",
                subject_id=user_id,
                latency_ms=(time.perf_counter() - start) * 1000,
                attempts=0,
                success=False,
                error_code=exc.code,
            )
            raise
        self._publish_rewards(user_id, settlement)

        goal_results, not_updated = self._progress_from_session(user_id, duration, subject)
        log_run(
            operation="record_session",
            subject_id=user_id,
            latency_ms=(time.perf_counter() - start) * 1000,
            attempts=1,
            success=True,
            applied=bool(goal_results),
            points_awarded=settlement.points_awarded,
        )
        return SessionResult(
            user_id=user_id,
            points_awarded=settlement.points_awarded,
            level_up=settlement.level_up,
            badges_unlocked=settlement.badges_unlocked,
            goal_results=goal_results,
            goals_not_updated=not_updated,
        )

    def _progress_from_session(
        self, user_id: UUID, duration: float, subject: str | None
    ) -> tuple[tuple[ProgressResult, ...], tuple[UUID, ...]]:
        """Apply an already credited session to active hours/sessions goals without raising."""
        try:
            goals = self.goals.active_goals(user_id)
        except StorageUnavailable:
            logging.exception("could not list active goals for user %s after a session", user_id)
            return (), ()

        note = f"Auto-updated from session: {subject}" if subject else "Auto-updated from session"
        results = []
        not_updated = []
        for goal in goals:
            if goal.target_type is TargetType.HOURS:
                delta = round(duration / 3600, 2)
            elif goal.target_type is TargetType.SESSIONS:
                delta = 1
            else:
                continue
            if delta <= 0:
                continue
            try:
                results.append(
                    self.apply_progress(
                        user_id, goal.id, delta, note, source=ProgressSource.SESSION
                    )
                )
            except (GoalNotFound, GoalArchived):
                # Deleted or archived between listing and updating.
                continue
            except ProgressConflict as exc:
                if exc.progress_committed:
                    logging.warning(
                        "session progress on goal %s committed but its reward did not settle", goal.id
                    )
                    continue
                logging.warning("session progress on goal %s lost every race: %s", goal.id, exc)
                not_updated.append(goal.id)
            except StorageUnavailable:
                logging.exception("session progress on goal %s failed (storage unavailable)", goal.id)
                not_updated.append(goal.id)
        return tuple(results), tuple(not_updated)
