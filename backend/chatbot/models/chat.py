"""Chat, message and vote models."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from backend.chatbot.models.common import Visibility


class User(BaseModel):
    """Registered user. ``password`` holds the bcrypt hash, never plaintext."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    password: str | None = Field(default=None, exclude=True)


class Chat(BaseModel):
    """A conversation thread owned by one user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    title: str
    user_id: UUID
    visibility: Visibility = Visibility.private


class ChatMessage(BaseModel):
    """A stored message; ``content`` is an opaque structured payload."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: UUID
    role: str
    content: Any
    created_at: datetime


class NewMessage(BaseModel):
    """Message to insert. Identity and timestamp are assigned when omitted."""

    id: UUID | None = None
    chat_id: UUID
    role: str = Field(..., min_length=1)
    content: Any
    created_at: datetime | None = None


class Vote(BaseModel):
    """Up/down judgment on one message; keyed by (chat_id, message_id)."""

    model_config = ConfigDict(from_attributes=True)

    chat_id: UUID
    message_id: UUID
    is_upvoted: bool
