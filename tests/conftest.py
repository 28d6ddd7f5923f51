# ABOUTME: Pytest hooks and shared fixtures. Sets SECRET_KEY for tests before app/config load.
# ABOUTME: Provides an in-memory SQLite engine, a get_session stand-in, SQL stores and a seeded user.

import os
from contextlib import contextmanager

import pytest
from dotenv import load_dotenv
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

load_dotenv()

# Required by core.config before any test imports api.main.
os.environ.setdefault("SECRET_KEY", "test-secret-for-pytest")


@pytest.fixture
def in_memory_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def fake_get_session(in_memory_engine):
    """Context manager that yields a session on the in-memory engine, in place of core.database.get_session."""

    @contextmanager
    def _fake():
        with Session(in_memory_engine) as s:
            yield s

    return _fake


@pytest.fixture
def user(in_memory_engine):
    from core.auth import hash_password
    from core.database import User

    with Session(in_memory_engine) as session:
        row = User(username="learner", password_hash=hash_password("password123"))
        session.add(row)
        session.commit()
        session.refresh(row)
        return row


@pytest.fixture
def goal_store(fake_get_session):
    from progress_engine.store import SqlGoalStore

    return SqlGoalStore(fake_get_session)


@pytest.fixture
def reward_store(fake_get_session):
    from progress_engine.store import SqlRewardStore

    return SqlRewardStore(fake_get_session)
