# ABOUTME: Goal and reward record stores: abstract ports plus SQLModel implementations with compare-and-swap writes.
# ABOUTME: conditional_write is UPDATE ... WHERE version = expected; any other SQLAlchemy failure becomes StorageUnavailable.

import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, ContextManager, Iterable
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from core.database import (
    Goal,
    Milestone,
    PointsEntry,
    ProgressEntry,
    UserRewardState,
    utcnow,
)
from progress_engine.errors import GoalNotFound, StorageUnavailable
from progress_engine.models import (
    GoalMutation,
    GoalSnapshot,
    GoalStatus,
    MilestoneSnapshot,
    ProgressEntrySnapshot,
    ProgressSource,
    RewardMutation,
    RewardSnapshot,
    TargetType,
)

SessionFactory = Callable[[], ContextManager[Session]]


class GoalStore(ABC):
    @abstractmethod
    def read(self, goal_id: UUID) -> tuple[GoalSnapshot, int]:
        """Return the goal and its current version. Raises GoalNotFound."""

    @abstractmethod
    def conditional_write(
        self, goal_id: UUID, expected_version: int, mutation: GoalMutation
    ) -> bool:
        """Apply mutation atomically iff the stored version equals expected_version; False on mismatch."""

    @abstractmethod
    def active_goals(self, user_id: UUID) -> list[GoalSnapshot]:
        """Goals of user_id that are not archived or completed."""


class RewardStore(ABC):
    @abstractmethod
    def read(self, user_id: UUID) -> tuple[RewardSnapshot, int]:
        """Return the user's reward state and version, creating a default record on first use."""

    @abstractmethod
    def conditional_write(
        self, user_id: UUID, expected_version: int, mutation: RewardMutation
    ) -> bool:
        """Apply mutation atomically iff the stored version equals expected_version; False on mismatch."""


def _milestone_snapshot(row: Milestone) -> MilestoneSnapshot:
    return MilestoneSnapshot(
        id=row.id,
        title=row.title,
        target_progress=row.target_progress,
        position=row.position,
        completed=row.completed,
        completed_at=row.completed_at,
    )


def _goal_snapshot(row: Goal, milestones: Iterable[Milestone]) -> GoalSnapshot:
    return GoalSnapshot(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        target_type=TargetType(row.target_type),
        target_value=row.target_value,
        current_value=row.current_value,
        status=GoalStatus(row.status),
        milestones=tuple(
            _milestone_snapshot(m) for m in sorted(milestones, key=lambda m: m.position)
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
    )


def _entry_snapshot(row: ProgressEntry) -> ProgressEntrySnapshot:
    return ProgressEntrySnapshot(
        goal_id=row.goal_id,
        delta=row.delta,
        resulting_value=row.resulting_value,
        note=row.note,
        source=ProgressSource(row.source),
        created_at=row.created_at,
    )


class _SqlStore:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        """Session whose SQLAlchemy failures surface as StorageUnavailable."""
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Storage backend failed: {type(exc).__name__}") from exc


class SqlGoalStore(_SqlStore, GoalStore):
    """Goal records on SQLModel. The only place goal rows, milestones and the progress ledger are touched."""

    def _load(self, session: Session, goal_id: UUID) -> Goal:
        row = session.get(Goal, goal_id)
        if row is None:
            raise GoalNotFound(f"Goal {goal_id} not found.")
        return row

    def _milestones(self, session: Session, goal_ids: list[UUID]) -> dict[UUID, list[Milestone]]:
        by_goal: dict[UUID, list[Milestone]] = {gid: [] for gid in goal_ids}
        if goal_ids:
            stmt = select(Milestone).where(Milestone.goal_id.in_(goal_ids))
            for m in session.exec(stmt):
                by_goal[m.goal_id].append(m)
        return by_goal

    def _owned(self, session: Session, goal_id: UUID, user_id: UUID) -> Goal:
        row = self._load(session, goal_id)
        if row.user_id != user_id:
            raise GoalNotFound(f"Goal {goal_id} not found.")
        return row

    def read(self, goal_id: UUID) -> tuple[GoalSnapshot, int]:
        with self._session() as session:
            row = self._load(session, goal_id)
            milestones = self._milestones(session, [row.id])[row.id]
            return _goal_snapshot(row, milestones), row.version

    def conditional_write(
        self, goal_id: UUID, expected_version: int, mutation: GoalMutation
    ) -> bool:
        now = mutation.at or utcnow()
        values = {
            "current_value": mutation.current_value,
            "version": Goal.version + 1,
            "updated_at": now,
        }
        if mutation.completes_goal:
            values["status"] = GoalStatus.COMPLETED.value
            values["completed_at"] = now
        with self._session() as session:
            result = session.connection().execute(
                update(Goal)
                .where(Goal.id == goal_id, Goal.version == expected_version)
                .values(**values)
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            if mutation.completed_milestone_ids:
                session.connection().execute(
                    update(Milestone)
                    .where(
                        Milestone.goal_id == goal_id,
                        Milestone.id.in_(mutation.completed_milestone_ids),
                        Milestone.completed == False,  # noqa: E712
                    )
                    .values(completed=True, completed_at=now)
                )
            session.add(
                ProgressEntry(
                    goal_id=goal_id,
                    delta=mutation.delta,
                    resulting_value=mutation.current_value,
                    note=mutation.note,
                    source=mutation.source.value,
                    created_at=now,
                )
            )
            session.commit()
            return True

    def active_goals(self, user_id: UUID) -> list[GoalSnapshot]:
        with self._session() as session:
            stmt = (
                select(Goal)
                .where(Goal.user_id == user_id, Goal.status == GoalStatus.ACTIVE.value)
                .order_by(Goal.created_at)
            )
            rows = list(session.exec(stmt))
            milestones = self._milestones(session, [r.id for r in rows])
            return [_goal_snapshot(r, milestones[r.id]) for r in rows]

    def create(
        self,
        user_id: UUID,
        title: str,
        target_type: TargetType,
        target_value: float,
        milestones: Iterable[tuple[str, float]] = (),
        description: str | None = None,
    ) -> GoalSnapshot:
        with self._session() as session:
            row = Goal(
                user_id=user_id,
                title=title,
                description=description,
                target_type=target_type.value,
                target_value=target_value,
            )
            session.add(row)
            session.flush()
            milestone_rows = [
                Milestone(goal_id=row.id, title=m_title, target_progress=target, position=i)
                for i, (m_title, target) in enumerate(milestones)
            ]
            session.add_all(milestone_rows)
            session.commit()
            session.refresh(row)
            for m in milestone_rows:
                session.refresh(m)
            return _goal_snapshot(row, milestone_rows)

    def get(self, goal_id: UUID, user_id: UUID) -> GoalSnapshot:
        with self._session() as session:
            row = self._owned(session, goal_id, user_id)
            return _goal_snapshot(row, self._milestones(session, [row.id])[row.id])

    def list_for_user(
        self, user_id: UUID, limit: int, offset: int
    ) -> tuple[list[GoalSnapshot], int]:
        """Newest first. Returns (page, total)."""
        with self._session() as session:
            total = session.exec(
                select(func.count()).select_from(Goal).where(Goal.user_id == user_id)
            ).one()
            stmt = (
                select(Goal)
                .where(Goal.user_id == user_id)
                .order_by(Goal.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            rows = list(session.exec(stmt))
            milestones = self._milestones(session, [r.id for r in rows])
            return [_goal_snapshot(r, milestones[r.id]) for r in rows], total

    def archive(self, goal_id: UUID, user_id: UUID) -> GoalSnapshot:
        """Move the goal to archived, bumping its version so in-flight updates lose their race."""
        with self._session() as session:
            self._owned(session, goal_id, user_id)
            session.connection().execute(
                update(Goal)
                .where(Goal.id == goal_id, Goal.status != GoalStatus.ARCHIVED.value)
                .values(
                    status=GoalStatus.ARCHIVED.value,
                    version=Goal.version + 1,
                    updated_at=utcnow(),
                )
            )
            session.commit()
            session.expire_all()
            row = self._load(session, goal_id)
            return _goal_snapshot(row, self._milestones(session, [row.id])[row.id])

    def delete(self, goal_id: UUID, user_id: UUID) -> None:
        """Delete the goal together with its milestones and progress ledger."""
        with self._session() as session:
            self._owned(session, goal_id, user_id)
            session.connection().execute(
                delete(ProgressEntry).where(ProgressEntry.goal_id == goal_id)
            )
            session.connection().execute(
                delete(Milestone).where(Milestone.goal_id == goal_id)
            )
            session.connection().execute(delete(Goal).where(Goal.id == goal_id))
            session.commit()

    def ledger(self, goal_id: UUID, user_id: UUID) -> list[ProgressEntrySnapshot]:
        """Progress entries for the goal, newest first."""
        with self._session() as session:
            self._owned(session, goal_id, user_id)
            stmt = (
                select(ProgressEntry)
                .where(ProgressEntry.goal_id == goal_id)
                .order_by(ProgressEntry.id.desc())
            )
            return [_entry_snapshot(r) for r in session.exec(stmt)]


def _reward_snapshot(row: UserRewardState) -> RewardSnapshot:
    return RewardSnapshot(
        user_id=row.user_id,
        total_points=row.total_points,
        level=row.level,
        badges=frozenset(json.loads(row.badges) if row.badges else []),
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        total_sessions=row.total_sessions,
        total_hours=row.total_hours,
        goals_completed=row.goals_completed,
        last_study_date=row.last_study_date,
    )


class SqlRewardStore(_SqlStore, RewardStore):
    """UserRewardState rows plus the points ledger, on SQLModel."""

    def read(self, user_id: UUID) -> tuple[RewardSnapshot, int]:
        with self._session() as session:
            row = session.get(UserRewardState, user_id)
            if row is not None:
                return _reward_snapshot(row), row.version
            row = UserRewardState(user_id=user_id)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Another request created the row first; use theirs.
                session.rollback()
                row = session.get(UserRewardState, user_id)
                if row is None:
                    raise
            else:
                session.refresh(row)
            return _reward_snapshot(row), row.version

    def conditional_write(
        self, user_id: UUID, expected_version: int, mutation: RewardMutation
    ) -> bool:
        now = utcnow()
        with self._session() as session:
            result = session.connection().execute(
                update(UserRewardState)
                .where(
                    UserRewardState.user_id == user_id,
                    UserRewardState.version == expected_version,
                )
                .values(
                    total_points=mutation.total_points,
                    level=mutation.level,
                    badges=json.dumps(list(mutation.badges)),
                    current_streak=mutation.current_streak,
                    longest_streak=mutation.longest_streak,
                    total_sessions=mutation.total_sessions,
                    total_hours=mutation.total_hours,
                    goals_completed=mutation.goals_completed,
                    last_study_date=mutation.last_study_date,
                    version=UserRewardState.version + 1,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.add_all(
                PointsEntry(
                    user_id=user_id,
                    amount=a.amount,
                    reason=a.reason,
                    source=a.source,
                    related_id=a.related_id,
                    created_at=now,
                )
                for a in mutation.awards
            )
            session.commit()
            return True

    def recent_points(self, user_id: UUID, limit: int) -> list[PointsEntry]:
        with self._session() as session:
            stmt = (
                select(PointsEntry)
                .where(PointsEntry.user_id == user_id)
                .order_by(PointsEntry.id.desc())
                .limit(limit)
            )
            return list(session.exec(stmt))
