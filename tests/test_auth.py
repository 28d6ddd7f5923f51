# ABOUTME: Unit tests for auth: password hashing, credential validation, JWT create/decode.
# ABOUTME: Does not call the API; tests core.auth and config.

from uuid import uuid4

import pytest

from core.auth import (
    create_access_token,
    decode_access_token,
    hash_password,
    validate_credentials,
    verify_password,
)
from core.config import MAX_USERNAME_LENGTH


def test_hash_password_salts_every_hash():
    h1 = hash_password("samepassword")
    h2 = hash_password("samepassword")
    assert h1 != h2
    assert verify_password("samepassword", h1)
    assert verify_password("samepassword", h2)


def test_verify_password_rejects_wrong_password():
    hashed = hash_password("correct horse")
    assert verify_password("wrong horse", hashed) is False


def test_long_passwords_compare_on_first_72_bytes():
    hashed = hash_password("x" * 80)
    assert verify_password("x" * 72 + "different", hashed)


def test_validate_credentials_returns_stripped_username():
    assert validate_credentials("  alice  ", "a" * 8) == "alice"


def test_validate_credentials_rejects_empty_username():
    with pytest.raises(ValueError, match="cannot be empty"):
        validate_credentials("   ", "longpassword")


def test_validate_credentials_rejects_long_username():
    with pytest.raises(ValueError, match="at most"):
        validate_credentials("a" * (MAX_USERNAME_LENGTH + 1), "longpassword")


def test_validate_credentials_rejects_short_password():
    with pytest.raises(ValueError, match="at least"):
        validate_credentials("alice", "short")


def test_create_and_decode_access_token():
    user_id = uuid4()
    assert decode_access_token(create_access_token(user_id)) == user_id


def test_expired_token_decodes_to_none():
    assert decode_access_token(create_access_token(uuid4(), expires_minutes=-1)) is None


def test_decode_access_token_invalid_returns_none():
    assert decode_access_token("not-a-jwt") is None
    assert decode_access_token("") is None
    assert decode_access_token("eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.eyJzdWIiOiJub3QtdXVpZCJ9.x") is None
