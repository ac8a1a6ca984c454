"""Registration and login actions.

Both return a status instead of raising, mirroring what the login and
register forms display. Login never distinguishes an unknown email from a
wrong password.
"""

import logging
from typing import Literal

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.chatbot.config import Settings
from backend.chatbot.db.errors import DatabaseError
from backend.chatbot.db.queries import create_user, get_user
from backend.chatbot.errors import ConflictError
from backend.chatbot.security import create_access_token, verify_password

logger = logging.getLogger(__name__)

RegisterStatus = Literal["idle", "success", "user_exists", "failed", "invalid_data"]
LoginStatus = Literal["idle", "success", "failed", "invalid_data"]


class Credentials(BaseModel):
    """Email/password pair submitted by the auth forms."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RegisterActionState(BaseModel):
    """Outcome of a registration attempt."""

    status: RegisterStatus


class LoginActionState(BaseModel):
    """Outcome of a login attempt; carries a token only on success."""

    status: LoginStatus
    access_token: str | None = None
    token_type: str | None = None


def _parse_credentials(email: str | None, password: str | None) -> Credentials | None:
    try:
        return Credentials(email=email, password=password)  # type: ignore[arg-type]
    except ValidationError:
        logger.warning(
            "Missing credential fields",
            extra={"structured": {"has_email": bool(email), "has_password": bool(password)}},
        )
        return None


async def register(
    session: AsyncSession, email: str | None, password: str | None
) -> RegisterActionState:
    """Register a new user.

    Returns:
        ``user_exists`` when the email is taken, ``invalid_data`` for blank
        fields, ``failed`` for any other storage failure.
    """
    credentials = _parse_credentials(email, password)
    if credentials is None:
        return RegisterActionState(status="invalid_data")

    try:
        user = await create_user(session, credentials.email, credentials.password)
    except ConflictError:
        return RegisterActionState(status="user_exists")
    except DatabaseError as e:
        logger.error(f"Registration failed: {e.message} ({e.operation})")
        return RegisterActionState(status="failed")

    logger.info("User registered: %s", user.id)
    return RegisterActionState(status="success")


async def login(
    session: AsyncSession, settings: Settings, email: str | None, password: str | None
) -> LoginActionState:
    """Verify credentials and issue an access token."""
    credentials = _parse_credentials(email, password)
    if credentials is None:
        return LoginActionState(status="invalid_data")

    try:
        users = await get_user(session, credentials.email)
    except DatabaseError as e:
        logger.error(f"Login lookup failed: {e.message} ({e.operation})")
        return LoginActionState(status="failed")

    if not users:
        # Dummy check so an unknown email costs the same as a wrong password
        verify_password(credentials.password, None)
        logger.info("Login rejected")
        return LoginActionState(status="failed")

    user = users[0]
    if not verify_password(credentials.password, user.password):
        logger.info("Login rejected")
        return LoginActionState(status="failed")

    token = create_access_token(settings, user_id=user.id, email=user.email)
    logger.info("Login successful: %s", user.id)
    return LoginActionState(status="success", access_token=token, token_type="bearer")
