"""Chat history endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.chatbot.api.auth import get_current_context
from backend.chatbot.db.context import RequestContext
from backend.chatbot.db.engine import get_session
from backend.chatbot.db.queries import get_chats_by_user_id
from backend.chatbot.models import Chat

router = APIRouter(tags=["history"])


@router.get("/history", response_model=list[Chat])
async def get_history(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[Chat]:
    """List the caller's chats, newest first.

    Returns:
        401 "Unauthorized!" without a valid session
    """
    return await get_chats_by_user_id(session, id=ctx.user_id)
