"""SQLAlchemy ORM models for users, chats, messages, votes, documents and suggestions."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class User(Base):
    """User table - one row per registered email."""

    __tablename__ = "user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    chats: Mapped[list["Chat"]] = relationship("Chat", back_populates="user")


class Chat(Base):
    """Chat table - a conversation thread owned by one user."""

    __tablename__ = "chat"
    __table_args__ = (Index("idx_chat_user_created", "user_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user.id"), nullable=False
    )
    visibility: Mapped[str] = mapped_column(Text, nullable=False, default="private")

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="chats")
    messages: Mapped[list["Message"]] = relationship(
        "Message", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True
    )
    votes: Mapped[list["Vote"]] = relationship(
        "Vote", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True
    )


class Message(Base):
    """Message table - ordered by created_at within a chat."""

    __tablename__ = "message"
    __table_args__ = (Index("idx_message_chat_created", "chat_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    chat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[Any] = mapped_column(JSONPayload, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")


class Vote(Base):
    """Vote table - at most one row per (chat, message)."""

    __tablename__ = "vote"

    chat_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("chat.id", ondelete="CASCADE"), primary_key=True
    )
    message_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("message.id", ondelete="CASCADE"), primary_key=True
    )
    is_upvoted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Relationships
    chat: Mapped["Chat"] = relationship("Chat", back_populates="votes")


class Document(Base):
    """Document table - each (id, created_at) row is one version."""

    __tablename__ = "document"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, default=utcnow
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(Text, nullable=False, default="text")
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user.id"), nullable=False
    )


class Suggestion(Base):
    """Suggestion table - a proposed edit to one document version.

    The document reference has no ON DELETE action: callers delete
    suggestions before the versions they point at.
    """

    __tablename__ = "suggestion"
    __table_args__ = (
        ForeignKeyConstraint(
            ["document_id", "document_created_at"],
            ["document.id", "document.created_at"],
        ),
        Index("idx_suggestion_document", "document_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    document_created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    original_text: Mapped[str] = mapped_column(Text, nullable=False)
    suggested_text: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
