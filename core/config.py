# ABOUTME: Shared app configuration and constants used across API, engine and UI (core package).
# ABOUTME: Values come from the environment (.env via python-dotenv); malformed numbers fall back to defaults.

import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_GOALS_PAGE_SIZE = 20
MAX_GOALS_PAGE_SIZE = 100
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000
MAX_NOTE_LENGTH = 200
MAX_MILESTONES_PER_GOAL = 20
RECENT_POINTS_LIMIT = 10

# Auth: SECRET_KEY must be set (e.g. in .env); no default to avoid JWT forgery in production.
_SECRET_KEY = os.environ.get("SECRET_KEY")
if not _SECRET_KEY:
    raise ValueError(
        "SECRET_KEY environment variable must be set. For local dev, add SECRET_KEY=your-secret to .env."
    )
SECRET_KEY = _SECRET_KEY
ALGORITHM = "HS256"


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _float_from_env(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


ACCESS_TOKEN_EXPIRE_MINUTES = _int_from_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
MIN_PASSWORD_LENGTH = 8
MIN_USERNAME_LENGTH = 1
MAX_USERNAME_LENGTH = 128

# Optimistic concurrency: total write attempts per record before giving up with a conflict.
PROGRESS_MAX_ATTEMPTS = max(1, _int_from_env("PROGRESS_MAX_ATTEMPTS", 5))
PROGRESS_REQUEST_TIMEOUT_SECONDS = _float_from_env("PROGRESS_REQUEST_TIMEOUT_SECONDS", 10.0)

# Reward policy table; the per-unit completion bonus and session tiers live in RewardPolicy.
MILESTONE_POINTS = _int_from_env("MILESTONE_POINTS", 25)
GOAL_COMPLETION_POINTS = _int_from_env("GOAL_COMPLETION_POINTS", 50)
SESSION_POINTS_PER_MINUTE = _int_from_env("SESSION_POINTS_PER_MINUTE", 2)
LEVEL_BASE_POINTS = max(1, _int_from_env("LEVEL_BASE_POINTS", 100))
LEVEL_GROWTH = max(1.0, _float_from_env("LEVEL_GROWTH", 1.2))

# CORS: comma-separated origins; default allows local Streamlit UI. Set in production.
_raw_cors = os.environ.get("CORS_ORIGINS", "http://localhost:8501")
CORS_ORIGINS = [o.strip() for o in _raw_cors.split(",") if o.strip()] or [
    "http://localhost:8501"
]
