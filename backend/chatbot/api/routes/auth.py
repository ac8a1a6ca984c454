"""Registration and login endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backend.chatbot.actions import LoginActionState, RegisterActionState, login, register
from backend.chatbot.config import Settings, get_settings
from backend.chatbot.db.engine import get_session

router = APIRouter(prefix="/auth", tags=["auth"])


class CredentialsForm(BaseModel):
    """Submitted form fields; blanks are reported as ``invalid_data``."""

    email: str | None = None
    password: str | None = None


@router.post("/register", response_model=RegisterActionState)
async def register_endpoint(
    form: CredentialsForm,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RegisterActionState:
    """Register a new user."""
    return await register(session, form.email, form.password)


@router.post("/login", response_model=LoginActionState)
async def login_endpoint(
    form: CredentialsForm,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LoginActionState:
    """Log in and receive a bearer token on success."""
    return await login(session, settings, form.email, form.password)
