# ABOUTME: Password hashing (bcrypt), credential validation and JWT issue/verify for API auth.
# ABOUTME: get_current_user is the FastAPI dependency every goal/reward route uses to scope data to its owner.

from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from core.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    MAX_USERNAME_LENGTH,
    MIN_PASSWORD_LENGTH,
    MIN_USERNAME_LENGTH,
    SECRET_KEY,
)
from core.database import User, get_session

_http_bearer = HTTPBearer(auto_error=False)

# bcrypt only looks at the first 72 bytes of a password.
_BCRYPT_MAX_PASSWORD_BYTES = 72

# Hash of a throwaway string; login verifies against it when the username is unknown
# so both paths cost one bcrypt check.
DUMMY_PASSWORD_HASH = "$2b$12$DbmI/yRDB5j9Q8I7R9cb5.9jZPh/c32i4pA35t4vTf2jdq32n.L.S"


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the password."""
    return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(_password_bytes(plain), hashed.encode("ascii"))


def validate_credentials(username: str, password: str) -> str:
    """Return the cleaned username, or raise ValueError describing the first problem found."""
    cleaned = username.strip()
    if len(cleaned) < MIN_USERNAME_LENGTH:
        raise ValueError("Username cannot be empty")
    if len(cleaned) > MAX_USERNAME_LENGTH:
        raise ValueError(f"Username must be at most {MAX_USERNAME_LENGTH} characters")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return cleaned


def create_access_token(user_id: UUID, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode({"sub": str(user_id), "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> UUID | None:
    """Return the user id in the token's subject, or None if the token is invalid or expired."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return UUID(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_http_bearer),
) -> User:
    """FastAPI dependency: resolve the Bearer token to a User or fail with 401."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise _unauthorized("Invalid or expired token")
    with get_session() as session:
        user = session.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user
