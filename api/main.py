# ABOUTME: FastAPI app: auth, goal CRUD, POST /goals/{id}/progress, POST /sessions, GET /rewards, GET /notifications.
# ABOUTME: Engine errors map to HTTP status plus a stable {code, message} body. Auth via JWT; goals scoped by user.

import logging
import time
from typing import Callable
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from core.auth import (
    DUMMY_PASSWORD_HASH,
    create_access_token,
    get_current_user,
    hash_password,
    validate_credentials,
    verify_password,
)
from core.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    CORS_ORIGINS,
    DEFAULT_GOALS_PAGE_SIZE,
    MAX_GOALS_PAGE_SIZE,
    PROGRESS_REQUEST_TIMEOUT_SECONDS,
    RECENT_POINTS_LIMIT,
)
from core.database import User, get_session
from core.schemas import (
    BadgeOut,
    GoalCreateRequest,
    GoalListResponse,
    GoalOut,
    LevelUpOut,
    MilestoneOut,
    PointsEntryOut,
    ProgressEntryOut,
    ProgressRequest,
    ProgressResponse,
    RewardProfileResponse,
    SessionRequest,
    SessionResponse,
)
from progress_engine import (
    GoalArchived,
    GoalNotFound,
    GoalProgressEngine,
    InvalidDelta,
    ProgressConflict,
    ProgressError,
    ProgressResult,
    RequestCancelled,
    SqlGoalStore,
    SqlRewardStore,
    StorageUnavailable,
)
from progress_engine.badges import resolve
from progress_engine.events import EventBus, NotificationInbox
from progress_engine.rewards import (
    RewardPolicy,
    level_threshold,
    points_to_next_level,
)

auth_router = APIRouter(prefix="/auth", tags=["auth"])


class SignupRequest(BaseModel):
    username: str
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class SignupResponse(BaseModel):
    id: str
    username: str
    access_token: str
    token_type: str
    expires_in: int


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int


@auth_router.post("/signup", status_code=201, response_model=SignupResponse)
def post_signup(req: SignupRequest):
    """Create a new user and return an access token so the client can skip calling login."""
    try:
        username = validate_credentials(req.username, req.password)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"message": str(e)})
    try:
        with get_session() as session:
            user = User(username=username, password_hash=hash_password(req.password))
            session.add(user)
            session.commit()
            session.refresh(user)
            return SignupResponse(
                id=str(user.id),
                username=user.username,
                access_token=create_access_token(user.id),
                token_type="bearer",
                expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            )
    except IntegrityError:
        return JSONResponse(status_code=409, content={"message": "Username already taken."})
    except SQLAlchemyError:
        logging.exception("post_signup failed (database error)")
        return JSONResponse(status_code=500, content={"message": "Could not create account."})


@auth_router.post("/login", response_model=LoginResponse)
def post_login(req: LoginRequest):
    """Authenticate and return a JWT. Unknown usernames still pay for one bcrypt check."""
    with get_session() as session:
        user = session.exec(select(User).where(User.username == req.username.strip())).first()
    password_hash = user.password_hash if user else DUMMY_PASSWORD_HASH
    if not verify_password(req.password, password_hash) or user is None:
        return JSONResponse(status_code=401, content={"message": "Invalid username or password."})
    return LoginResponse(
        access_token=create_access_token(user.id),
        token_type="bearer",
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


event_bus = EventBus()
inbox = NotificationInbox()
event_bus.subscribe(inbox)

app = FastAPI(title="Study Goal Tracker API")
app.include_router(auth_router)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ERROR_STATUS = {
    GoalNotFound: 404,
    GoalArchived: 409,
    ProgressConflict: 409,
    InvalidDelta: 422,
    StorageUnavailable: 503,
    RequestCancelled: 504,
}


def _error_response(exc: ProgressError) -> JSONResponse:
    """Translate an engine error into its HTTP status and stable machine-readable body."""
    content = {"code": exc.code, "message": exc.message, "retryable": exc.retryable}
    if isinstance(exc, ProgressConflict):
        content["progressCommitted"] = exc.progress_committed
    return JSONResponse(status_code=_ERROR_STATUS.get(type(exc), 500), content=content)


def _goal_store() -> SqlGoalStore:
    return SqlGoalStore(get_session)


def _reward_store() -> SqlRewardStore:
    return SqlRewardStore(get_session)


def _engine() -> GoalProgressEngine:
    return GoalProgressEngine(_goal_store(), _reward_store(), bus=event_bus)


def _deadline() -> Callable[[], bool]:
    """Abort check for the engine: true once this request has run past its time limit."""
    deadline = time.monotonic() + PROGRESS_REQUEST_TIMEOUT_SECONDS
    return lambda: time.monotonic() > deadline


def _progress_response(result) -> ProgressResponse:
    return ProgressResponse(
        goal=GoalOut.model_validate(result.goal),
        newly_completed_milestones=[
            MilestoneOut.model_validate(m) for m in result.newly_completed_milestones
        ],
        goal_completed=result.goal_completed,
        points_awarded=result.points_awarded,
        level_up=LevelUpOut(new_level=result.level_up.new_level) if result.level_up else None,
        badges_unlocked=[BadgeOut.model_validate(b) for b in result.badges_unlocked],
        applied=result.applied,
    )


@app.post("/goals", status_code=201, response_model=GoalOut)
def post_goals(req: GoalCreateRequest, current_user: User = Depends(get_current_user)):
    """Create a goal (with optional milestones) owned by the authenticated user."""
    try:
        goal = _goal_store().create(
            current_user.id,
            title=req.title.strip(),
            target_type=req.target_type,
            target_value=req.target_value,
            milestones=[(m.title.strip(), m.target_progress) for m in req.milestones],
            description=req.description,
        )
    except ProgressError as e:
        logging.exception("post_goals failed")
        return _error_response(e)
    return GoalOut.model_validate(goal)


@app.get("/goals", response_model=GoalListResponse)
def get_goals(
    limit: int = Query(DEFAULT_GOALS_PAGE_SIZE, ge=0, le=MAX_GOALS_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
):
    """List the authenticated user's goals, newest first. Returns { goals: [...], total: N }."""
    try:
        goals, total = _goal_store().list_for_user(current_user.id, limit, offset)
    except ProgressError as e:
        logging.exception("get_goals failed")
        return _error_response(e)
    return GoalListResponse(goals=[GoalOut.model_validate(g) for g in goals], total=total)


@app.get("/goals/{goal_id}", response_model=GoalOut)
def get_goal(goal_id: UUID, current_user: User = Depends(get_current_user)):
    try:
        goal = _goal_store().get(goal_id, current_user.id)
    except ProgressError as e:
        return _error_response(e)
    return GoalOut.model_validate(goal)


@app.post("/goals/{goal_id}/archive", response_model=GoalOut)
def post_archive_goal(goal_id: UUID, current_user: User = Depends(get_current_user)):
    """Archive a goal; further progress updates on it fail with GOAL_ARCHIVED."""
    try:
        goal = _goal_store().archive(goal_id, current_user.id)
    except ProgressError as e:
        return _error_response(e)
    return GoalOut.model_validate(goal)


@app.delete("/goals/{goal_id}", status_code=204)
def delete_goal(goal_id: UUID, current_user: User = Depends(get_current_user)):
    """Delete a goal along with its milestones and progress history."""
    try:
        _goal_store().delete(goal_id, current_user.id)
    except ProgressError as e:
        return _error_response(e)
    return Response(status_code=204)


@app.post("/goals/{goal_id}/progress", response_model=ProgressResponse)
def post_progress(
    goal_id: UUID, req: ProgressRequest, current_user: User = Depends(get_current_user)
):
    """Apply a progress delta. No-op and non-finite deltas succeed with applied=false; lost races retry internally."""
    try:
        result = _engine().apply_progress(
            current_user.id, goal_id, req.delta, req.note, should_abort=_deadline()
        )
    except InvalidDelta:
        try:
            goal = _goal_store().get(goal_id, current_user.id)
        except ProgressError as e:
            return _error_response(e)
        return _progress_response(ProgressResult(goal=goal, applied=False))
    except ProgressError as e:
        if isinstance(e, StorageUnavailable):
            logging.exception("post_progress failed (storage unavailable)")
        return _error_response(e)
    return _progress_response(result)


@app.get("/goals/{goal_id}/progress", response_model=list[ProgressEntryOut])
def get_progress(goal_id: UUID, current_user: User = Depends(get_current_user)):
    """Progress ledger for a goal, newest first."""
    try:
        entries = _goal_store().ledger(goal_id, current_user.id)
    except ProgressError as e:
        return _error_response(e)
    return [ProgressEntryOut.model_validate(e) for e in entries]


@app.post("/sessions", response_model=SessionResponse)
def post_session(req: SessionRequest, current_user: User = Depends(get_current_user)):
    """Record a finished study session: points, streak, badges and auto-progress on active goals."""
    try:
        result = _engine().record_session(
            current_user.id, req.duration_seconds, req.subject, should_abort=_deadline()
        )
    except ProgressError as e:
        if isinstance(e, StorageUnavailable):
            logging.exception("post_session failed (storage unavailable)")
        return _error_response(e)
    return SessionResponse(
        points_awarded=result.points_awarded,
        level_up=LevelUpOut(new_level=result.level_up.new_level) if result.level_up else None,
        badges_unlocked=[BadgeOut.model_validate(b) for b in result.badges_unlocked],
        goal_updates=[_progress_response(r) for r in result.goal_results],
        goals_not_updated=list(result.goals_not_updated),
    )


@app.get("/rewards", response_model=RewardProfileResponse)
def get_rewards(current_user: User = Depends(get_current_user)):
    """Points, level, streaks, counters, badges and recent point awards for the authenticated user."""
    store = _reward_store()
    try:
        state, _version = store.read(current_user.id)
        recent = store.recent_points(current_user.id, RECENT_POINTS_LIMIT)
    except ProgressError as e:
        logging.exception("get_rewards failed")
        return _error_response(e)
    policy = RewardPolicy.from_config()
    floor = level_threshold(state.level, policy)
    to_next = points_to_next_level(state.total_points, policy)
    span = (state.total_points - floor) + to_next
    level_progress = round((state.total_points - floor) / span * 100) if span > 0 else 0
    return RewardProfileResponse(
        total_points=state.total_points,
        level=state.level,
        points_to_next_level=to_next,
        level_progress=max(0, min(100, level_progress)),
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        total_sessions=state.total_sessions,
        total_hours=state.total_hours,
        goals_completed=state.goals_completed,
        badges=[BadgeOut.model_validate(b) for b in resolve(state.badges)],
        recent_points=[PointsEntryOut.model_validate(p) for p in recent],
    )


@app.get("/notifications")
def get_notifications(current_user: User = Depends(get_current_user)):
    """Return and clear pending milestone/goal/level/badge notifications for the authenticated user."""
    return {"notifications": inbox.drain(current_user.id)}
