"""Persistence gateway: typed async operations over every entity kind.

Each function takes the AsyncSession as its first argument. Failures are
translated by ``database_operation`` into DatabaseError; writes commit once,
so multi-statement writes are all-or-nothing.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from backend.chatbot.db.errors import database_operation
from backend.chatbot.db.models import Chat as ChatDB
from backend.chatbot.db.models import Document as DocumentDB
from backend.chatbot.db.models import Message as MessageDB
from backend.chatbot.db.models import Suggestion as SuggestionDB
from backend.chatbot.db.models import User as UserDB
from backend.chatbot.db.models import Vote as VoteDB
from backend.chatbot.db.models import utcnow
from backend.chatbot.models import (
    Chat,
    ChatMessage,
    Document,
    DocumentKind,
    NewMessage,
    NewSuggestion,
    Suggestion,
    User,
    Visibility,
    Vote,
    VoteType,
)
from backend.chatbot.security import get_password_hash

logger = logging.getLogger(__name__)

# Upserts need the dialect-specific INSERT for ON CONFLICT
_DIALECT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


# Users


@database_operation("getUser")
async def get_user(session: AsyncSession, email: str) -> list[User]:
    """Get user by email.

    Returns:
        Zero or one matching users; an empty list means not found.
    """
    logger.debug("Getting user by email: %s", email)
    result = await session.execute(select(UserDB).where(UserDB.email == email))
    user = result.scalar_one_or_none()
    return [User.model_validate(user)] if user else []


@database_operation("createUser")
async def create_user(session: AsyncSession, email: str, password: str) -> User:
    """Create a user, storing only the salted hash of the password.

    Raises:
        DatabaseError: kind ``conflict`` when the email is already registered
    """
    user = UserDB(id=uuid.uuid4(), email=email, password=get_password_hash(password))
    session.add(user)
    await session.commit()

    logger.info("User created: %s", user.id)
    return User.model_validate(user)


# Chats


@database_operation("saveChat")
async def save_chat(
    session: AsyncSession,
    *,
    id: uuid.UUID,
    user_id: uuid.UUID,
    title: str,
    visibility: Visibility = Visibility.private,
    messages: Sequence[NewMessage] = (),
) -> Chat:
    """Create a chat owned by ``user_id``.

    Initial ``messages`` are inserted in the same transaction; if any of them
    fails, the chat is not created either.
    """
    chat = ChatDB(
        id=id,
        created_at=utcnow(),
        user_id=user_id,
        title=title,
        visibility=visibility.value,
    )
    session.add(chat)
    if messages:
        await session.flush()
        session.add_all(_message_rows(messages))
    await session.commit()

    logger.info("Chat created: %s for user: %s", chat.id, user_id)
    return Chat.model_validate(chat)


@database_operation("deleteChatById")
async def delete_chat_by_id(session: AsyncSession, *, id: uuid.UUID) -> Chat:
    """Delete a chat together with its messages and votes.

    Raises:
        DatabaseError: kind ``not_found`` when the chat does not exist
    """
    result = await session.execute(select(ChatDB).where(ChatDB.id == id))
    chat = Chat.model_validate(result.scalar_one())

    await session.execute(delete(VoteDB).where(VoteDB.chat_id == id))
    await session.execute(delete(MessageDB).where(MessageDB.chat_id == id))
    await session.execute(delete(ChatDB).where(ChatDB.id == id))
    await session.commit()

    logger.info("Chat deleted: %s", id)
    return chat


@database_operation("getChatsByUserId")
async def get_chats_by_user_id(session: AsyncSession, *, id: uuid.UUID) -> list[Chat]:
    """List a user's chats, newest first."""
    result = await session.execute(
        select(ChatDB).where(ChatDB.user_id == id).order_by(ChatDB.created_at.desc())
    )
    return [Chat.model_validate(row) for row in result.scalars().all()]


@database_operation("getChatById")
async def get_chat_by_id(session: AsyncSession, *, id: uuid.UUID) -> Chat | None:
    """Get chat by ID."""
    result = await session.execute(select(ChatDB).where(ChatDB.id == id))
    chat = result.scalar_one_or_none()
    return Chat.model_validate(chat) if chat else None


@database_operation("updateChatVisiblityById")
async def update_chat_visibility_by_id(
    session: AsyncSession, *, chat_id: uuid.UUID, visibility: Visibility
) -> Chat:
    """Set chat visibility.

    Raises:
        DatabaseError: kind ``not_found`` when the chat does not exist
    """
    result = await session.execute(select(ChatDB).where(ChatDB.id == chat_id))
    chat = result.scalar_one()
    chat.visibility = visibility.value
    await session.commit()

    return Chat.model_validate(chat)


# Messages


def _message_rows(messages: Sequence[NewMessage]) -> list[MessageDB]:
    return [
        MessageDB(
            id=message.id or uuid.uuid4(),
            chat_id=message.chat_id,
            role=message.role,
            content=message.content,
            created_at=message.created_at or utcnow(),
        )
        for message in messages
    ]


@database_operation("saveMessages")
async def save_messages(session: AsyncSession, *, messages: Sequence[NewMessage]) -> int:
    """Bulk insert messages.

    Returns:
        Number of messages inserted
    """
    rows = _message_rows(messages)
    session.add_all(rows)
    await session.commit()

    logger.info("Created %d messages", len(rows))
    return len(rows)


@database_operation("getMessagesByChatId")
async def get_messages_by_chat_id(
    session: AsyncSession, *, id: uuid.UUID
) -> list[ChatMessage]:
    """List a chat's messages in replay order (created_at ascending)."""
    result = await session.execute(
        select(MessageDB).where(MessageDB.chat_id == id).order_by(MessageDB.created_at.asc())
    )
    return [ChatMessage.model_validate(row) for row in result.scalars().all()]


@database_operation("getMessageById")
async def get_message_by_id(session: AsyncSession, *, id: uuid.UUID) -> ChatMessage | None:
    """Get message by ID."""
    message = await session.get(MessageDB, id)
    return ChatMessage.model_validate(message) if message else None


@database_operation("deleteMessagesByChatIdAfterTimestamp")
async def delete_messages_by_chat_id_after_timestamp(
    session: AsyncSession, *, chat_id: uuid.UUID, timestamp: datetime
) -> int:
    """Truncate a chat's history after ``timestamp``.

    Votes on the affected messages go first, then the messages, in one
    transaction.

    Returns:
        Number of messages deleted
    """
    doomed = select(MessageDB.id).where(
        MessageDB.chat_id == chat_id, MessageDB.created_at > timestamp
    )
    await session.execute(
        delete(VoteDB).where(VoteDB.chat_id == chat_id, VoteDB.message_id.in_(doomed))
    )
    result = await session.execute(
        delete(MessageDB).where(MessageDB.chat_id == chat_id, MessageDB.created_at > timestamp)
    )
    await session.commit()

    return result.rowcount or 0


# Votes


@database_operation("voteMessage")
async def vote_message(
    session: AsyncSession,
    *,
    chat_id: uuid.UUID,
    message_id: uuid.UUID,
    type: VoteType,
) -> Vote:
    """Record an up/down vote, overwriting any earlier vote on the same message.

    A single INSERT ... ON CONFLICT DO UPDATE, so concurrent first votes on
    the same message both succeed and the last one wins.
    """
    insert = _DIALECT_INSERTS[session.get_bind().dialect.name]
    stmt = insert(VoteDB).values(chat_id=chat_id, message_id=message_id, is_upvoted=type == "up")
    stmt = stmt.on_conflict_do_update(
        index_elements=[VoteDB.chat_id, VoteDB.message_id],
        set_={"is_upvoted": stmt.excluded.is_upvoted},
    ).returning(VoteDB)

    result = await session.execute(stmt, execution_options={"populate_existing": True})
    vote = result.scalar_one()
    await session.commit()

    logger.info("Vote %s recorded for message %s in chat %s", type, message_id, chat_id)
    return Vote.model_validate(vote)


@database_operation("getVotesByChatId")
async def get_votes_by_chat_id(session: AsyncSession, *, id: uuid.UUID) -> list[Vote]:
    """List votes in a chat."""
    result = await session.execute(select(VoteDB).where(VoteDB.chat_id == id))
    return [Vote.model_validate(row) for row in result.scalars().all()]


# Documents


@database_operation("saveDocument")
async def save_document(
    session: AsyncSession,
    *,
    id: uuid.UUID,
    title: str,
    kind: DocumentKind,
    content: str | None,
    user_id: uuid.UUID,
) -> Document:
    """Save a new version of a document."""
    document = DocumentDB(
        id=id,
        created_at=utcnow(),
        title=title,
        kind=kind.value,
        content=content,
        user_id=user_id,
    )
    session.add(document)
    await session.commit()

    return Document.model_validate(document)


@database_operation("getDocumentsById")
async def get_documents_by_id(session: AsyncSession, *, id: uuid.UUID) -> list[Document]:
    """List every version of a document, oldest first."""
    result = await session.execute(
        select(DocumentDB).where(DocumentDB.id == id).order_by(DocumentDB.created_at.asc())
    )
    return [Document.model_validate(row) for row in result.scalars().all()]


@database_operation("getDocumentById")
async def get_document_by_id(session: AsyncSession, *, id: uuid.UUID) -> Document | None:
    """Get the current (latest) version of a document."""
    result = await session.execute(
        select(DocumentDB)
        .where(DocumentDB.id == id)
        .order_by(DocumentDB.created_at.desc())
        .limit(1)
    )
    document = result.scalars().first()
    return Document.model_validate(document) if document else None


@database_operation("deleteDocumentsByIdAfterTimestamp")
async def delete_documents_by_id_after_timestamp(
    session: AsyncSession, *, id: uuid.UUID, timestamp: datetime
) -> int:
    """Drop document versions newer than ``timestamp``.

    Suggestions on those versions are deleted first; nothing cascades from
    document to suggestion.

    Returns:
        Number of document versions deleted
    """
    await session.execute(
        delete(SuggestionDB).where(
            SuggestionDB.document_id == id, SuggestionDB.document_created_at > timestamp
        )
    )
    result = await session.execute(
        delete(DocumentDB).where(DocumentDB.id == id, DocumentDB.created_at > timestamp)
    )
    await session.commit()

    return result.rowcount or 0


# Suggestions


@database_operation("saveSuggestions")
async def save_suggestions(
    session: AsyncSession, *, suggestions: Sequence[NewSuggestion]
) -> int:
    """Bulk insert suggestions.

    Returns:
        Number of suggestions inserted
    """
    rows = [
        SuggestionDB(
            id=suggestion.id or uuid.uuid4(),
            document_id=suggestion.document_id,
            document_created_at=suggestion.document_created_at,
            original_text=suggestion.original_text,
            suggested_text=suggestion.suggested_text,
            description=suggestion.description,
            is_resolved=suggestion.is_resolved,
            user_id=suggestion.user_id,
            created_at=suggestion.created_at or utcnow(),
        )
        for suggestion in suggestions
    ]
    session.add_all(rows)
    await session.commit()

    return len(rows)


@database_operation("getSuggestionsByDocumentId")
async def get_suggestions_by_document_id(
    session: AsyncSession, *, document_id: uuid.UUID
) -> list[Suggestion]:
    """List suggestions for every version of a document, newest first."""
    result = await session.execute(
        select(SuggestionDB)
        .where(SuggestionDB.document_id == document_id)
        .order_by(SuggestionDB.created_at.desc())
    )
    return [Suggestion.model_validate(row) for row in result.scalars().all()]
