"""Password hashing and bearer token helpers."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from passlib.context import CryptContext

from backend.chatbot.config import Settings

# bcrypt generates a fresh salt per hash
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    """Hash a plaintext password with a salted one-way hash."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Check a password against a stored hash.

    When there is no stored hash a dummy verification still runs so that
    unknown users cost the same as wrong passwords.
    """
    if not hashed_password:
        pwd_context.dummy_verify()
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    settings: Settings,
    *,
    user_id: uuid.UUID,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for a user."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload: dict[str, Any] = {"sub": str(user_id), "email": email, "exp": expire}
    return jwt.encode(
        payload, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm
    )


def decode_access_token(settings: Settings, token: str) -> dict[str, Any] | None:
    """Verify a token and return its claims, or None if invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError:
        return None
