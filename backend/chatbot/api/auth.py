"""Session/identity dependencies.

Bearer tokens are issued by ``POST /auth/login`` and carry the user id
(``sub``) and email.
"""

import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from backend.chatbot.config import Settings, get_settings
from backend.chatbot.db.context import RequestContext
from backend.chatbot.security import decode_access_token

_UNAUTHORIZED = "Unauthorized!"


def _context_from_header(authorization: str | None, settings: Settings) -> RequestContext | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None

    claims = decode_access_token(settings, authorization[7:])  # Strip "Bearer "
    if claims is None:
        return None

    try:
        return RequestContext(user_id=uuid.UUID(claims["sub"]), email=str(claims["email"]))
    except (KeyError, ValueError, TypeError):
        return None


async def get_current_context(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """Extract request context from the authorization header.

    Args:
        settings: Application settings (token secret and algorithm)
        authorization: Authorization header (e.g., "Bearer <token>")

    Returns:
        RequestContext with user_id and email

    Raises:
        HTTPException: 401 if the header is missing, malformed or expired
    """
    ctx = _context_from_header(authorization, settings)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ctx


async def get_optional_context(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext | None:
    """Like get_current_context, but anonymous callers get None instead of 401."""
    return _context_from_header(authorization, settings)
