"""Chat, message and vote endpoints.

Only the owner may modify a chat. Public chats can be read by anyone;
private chats only by their owner.
"""

import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.chatbot.api.auth import get_current_context, get_optional_context
from backend.chatbot.db.context import RequestContext
from backend.chatbot.db.engine import get_session
from backend.chatbot.db.queries import (
    delete_chat_by_id,
    delete_messages_by_chat_id_after_timestamp,
    get_chat_by_id,
    get_messages_by_chat_id,
    get_votes_by_chat_id,
    save_chat,
    save_messages,
    update_chat_visibility_by_id,
    vote_message,
)
from backend.chatbot.errors import ForbiddenError, NotFoundError, UnauthorizedError
from backend.chatbot.models import Chat, ChatMessage, NewMessage, Visibility, Vote, VoteType

router = APIRouter(prefix="/chats", tags=["chats"])


class MessageIn(BaseModel):
    """Message as submitted by the client."""

    id: uuid.UUID | None = None
    role: str = Field(..., min_length=1)
    content: Any
    created_at: datetime | None = None


class CreateChatRequest(BaseModel):
    """Request body for POST /chats."""

    id: uuid.UUID | None = None
    title: str = Field(..., min_length=1)
    visibility: Visibility = Visibility.private
    messages: list[MessageIn] = Field(default_factory=list)


class VisibilityRequest(BaseModel):
    visibility: Visibility


class VoteRequest(BaseModel):
    message_id: uuid.UUID
    type: VoteType


class CountResponse(BaseModel):
    count: int


async def _load_chat(session: AsyncSession, chat_id: uuid.UUID) -> Chat:
    chat = await get_chat_by_id(session, id=chat_id)
    if chat is None:
        raise NotFoundError("Chat not found", code="chat_not_found")
    return chat


async def get_owned_chat(
    session: AsyncSession, chat_id: uuid.UUID, ctx: RequestContext
) -> Chat:
    """Load a chat the caller owns.

    Raises:
        NotFoundError: If the chat does not exist
        ForbiddenError: If it belongs to someone else
    """
    chat = await _load_chat(session, chat_id)
    if chat.user_id != ctx.user_id:
        raise ForbiddenError("Access denied")
    return chat


async def get_readable_chat(
    session: AsyncSession, chat_id: uuid.UUID, ctx: RequestContext | None
) -> Chat:
    """Load a chat the caller may read: public, or owned by the caller."""
    chat = await _load_chat(session, chat_id)
    if chat.visibility == Visibility.public:
        return chat
    if ctx is None:
        raise UnauthorizedError("Unauthorized!")
    if chat.user_id != ctx.user_id:
        raise ForbiddenError("Access denied")
    return chat


@router.post("", response_model=Chat, status_code=status.HTTP_201_CREATED)
async def create_chat(
    request: CreateChatRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Chat:
    """Create a chat, optionally with its first messages, in one transaction."""
    chat_id = request.id or uuid.uuid4()
    return await save_chat(
        session,
        id=chat_id,
        user_id=ctx.user_id,
        title=request.title,
        visibility=request.visibility,
        messages=[
            NewMessage(chat_id=chat_id, **message.model_dump()) for message in request.messages
        ],
    )


@router.get("/{chat_id}", response_model=Chat)
async def get_chat(
    chat_id: uuid.UUID,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Chat:
    """Get a chat."""
    return await get_readable_chat(session, chat_id, ctx)


@router.delete("/{chat_id}", response_model=Chat)
async def delete_chat(
    chat_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Chat:
    """Delete a chat with its messages and votes."""
    await get_owned_chat(session, chat_id, ctx)
    return await delete_chat_by_id(session, id=chat_id)


@router.patch("/{chat_id}/visibility", response_model=Chat)
async def update_visibility(
    chat_id: uuid.UUID,
    request: VisibilityRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Chat:
    """Make a chat public or private."""
    await get_owned_chat(session, chat_id, ctx)
    return await update_chat_visibility_by_id(
        session, chat_id=chat_id, visibility=request.visibility
    )


@router.get("/{chat_id}/messages", response_model=list[ChatMessage])
async def list_messages(
    chat_id: uuid.UUID,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[ChatMessage]:
    """List messages in replay order."""
    await get_readable_chat(session, chat_id, ctx)
    return await get_messages_by_chat_id(session, id=chat_id)


@router.post(
    "/{chat_id}/messages", response_model=CountResponse, status_code=status.HTTP_201_CREATED
)
async def append_messages(
    chat_id: uuid.UUID,
    messages: list[MessageIn],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CountResponse:
    """Append messages to a chat."""
    await get_owned_chat(session, chat_id, ctx)
    count = await save_messages(
        session,
        messages=[NewMessage(chat_id=chat_id, **message.model_dump()) for message in messages],
    )
    return CountResponse(count=count)


@router.delete("/{chat_id}/messages", response_model=CountResponse)
async def truncate_messages(
    chat_id: uuid.UUID,
    after: Annotated[datetime, Query(description="Delete messages created after this instant")],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CountResponse:
    """Delete messages (and their votes) created after ``after``."""
    await get_owned_chat(session, chat_id, ctx)
    count = await delete_messages_by_chat_id_after_timestamp(
        session, chat_id=chat_id, timestamp=after
    )
    return CountResponse(count=count)


@router.get("/{chat_id}/votes", response_model=list[Vote])
async def list_votes(
    chat_id: uuid.UUID,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[Vote]:
    """List votes in a chat."""
    await get_readable_chat(session, chat_id, ctx)
    return await get_votes_by_chat_id(session, id=chat_id)


@router.post("/{chat_id}/votes", response_model=Vote)
async def cast_vote(
    chat_id: uuid.UUID,
    request: VoteRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Vote:
    """Vote a message up or down; a later vote replaces an earlier one."""
    await get_owned_chat(session, chat_id, ctx)
    return await vote_message(
        session, chat_id=chat_id, message_id=request.message_id, type=request.type
    )
