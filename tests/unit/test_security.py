"""Unit tests for password hashing and bearer tokens."""

import uuid
from datetime import timedelta

from backend.chatbot.config import Settings
from backend.chatbot.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)


def _settings(secret: str = "unit-secret") -> Settings:
    return Settings(_env_file=None, jwt_secret=secret)


def test_password_hash_is_salted_and_verifiable() -> None:
    first = get_password_hash("p1")
    second = get_password_hash("p1")

    assert first != "p1"
    assert first != second
    assert verify_password("p1", first)
    assert not verify_password("p2", first)


def test_verify_without_stored_hash_fails() -> None:
    assert not verify_password("p1", None)


def test_token_round_trip_carries_identity() -> None:
    settings = _settings()
    user_id = uuid.uuid4()

    token = create_access_token(settings, user_id=user_id, email="a@x.com")
    claims = decode_access_token(settings, token)

    assert claims is not None
    assert claims["sub"] == str(user_id)
    assert claims["email"] == "a@x.com"


def test_expired_token_is_rejected() -> None:
    settings = _settings()
    token = create_access_token(
        settings, user_id=uuid.uuid4(), email="a@x.com", expires_delta=timedelta(seconds=-5)
    )

    assert decode_access_token(settings, token) is None


def test_token_signed_with_other_secret_is_rejected() -> None:
    token = create_access_token(_settings("one"), user_id=uuid.uuid4(), email="a@x.com")

    assert decode_access_token(_settings("two"), token) is None
    assert decode_access_token(_settings("one"), "not-a-token") is None
