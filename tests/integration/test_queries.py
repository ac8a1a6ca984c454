"""Integration tests for the persistence gateway (SQLite with foreign keys on)."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.chatbot.db import queries
from backend.chatbot.db.errors import DatabaseError, DatabaseErrorKind
from backend.chatbot.db.models import Message as MessageDB
from backend.chatbot.db.models import Vote as VoteDB
from backend.chatbot.models import (
    DocumentKind,
    NewMessage,
    NewSuggestion,
    User,
    Visibility,
    Vote,
    VoteType,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


async def _chat_with_messages(
    session: AsyncSession, user: User, count: int = 3
) -> tuple[uuid.UUID, list[uuid.UUID]]:
    chat_id = uuid.uuid4()
    await queries.save_chat(session, id=chat_id, user_id=user.id, title="Trip ideas")
    message_ids = [uuid.uuid4() for _ in range(count)]
    # Inserted out of order on purpose
    await queries.save_messages(
        session,
        messages=[
            NewMessage(
                id=message_id,
                chat_id=chat_id,
                role="user" if i % 2 == 0 else "assistant",
                content={"parts": [{"type": "text", "text": f"message {i}"}]},
                created_at=T0 + timedelta(minutes=i),
            )
            for i, message_id in reversed(list(enumerate(message_ids)))
        ],
    )
    return chat_id, message_ids


async def _count(session: AsyncSession, model: type, **filters: object) -> int:
    stmt = select(func.count()).select_from(model)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    result = await session.execute(stmt)
    return result.scalar_one()


class TestUsers:
    @pytest.mark.asyncio
    async def test_get_user_returns_zero_or_one(self, session: AsyncSession, user: User) -> None:
        assert await queries.get_user(session, "nobody@example.com") == []

        found = await queries.get_user(session, user.email)
        assert [u.id for u in found] == [user.id]

    @pytest.mark.asyncio
    async def test_password_stored_as_hash(self, session: AsyncSession, user: User) -> None:
        (stored,) = await queries.get_user(session, user.email)

        assert stored.password is not None
        assert stored.password != "p1"
        assert "password" not in stored.model_dump()

    @pytest.mark.asyncio
    async def test_duplicate_email_is_conflict(self, session: AsyncSession, user: User) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await queries.create_user(session, user.email, "another")

        assert exc_info.value.kind == DatabaseErrorKind.conflict
        assert exc_info.value.operation == "createUser"


class TestChats:
    @pytest.mark.asyncio
    async def test_chat_created_with_initial_messages(
        self, session: AsyncSession, user: User
    ) -> None:
        chat_id = uuid.uuid4()
        messages = [
            NewMessage(chat_id=chat_id, role="user", content={"parts": []}, created_at=T0),
            NewMessage(
                chat_id=chat_id,
                role="assistant",
                content={"parts": []},
                created_at=T0 + timedelta(minutes=1),
            ),
        ]

        await queries.save_chat(
            session, id=chat_id, user_id=user.id, title="Trip ideas", messages=messages
        )

        stored = await queries.get_messages_by_chat_id(session, id=chat_id)
        assert [m.role for m in stored] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_failing_initial_message_leaves_no_chat(
        self, session_factory: async_sessionmaker[AsyncSession], user: User
    ) -> None:
        async with session_factory() as session:
            _, message_ids = await _chat_with_messages(session, user, count=1)

        chat_id = uuid.uuid4()
        async with session_factory() as session:
            with pytest.raises(DatabaseError) as exc_info:
                await queries.save_chat(
                    session,
                    id=chat_id,
                    user_id=user.id,
                    title="Copy",
                    messages=[
                        NewMessage(id=message_ids[0], chat_id=chat_id, role="user", content={})
                    ],
                )

        assert exc_info.value.kind == DatabaseErrorKind.conflict
        async with session_factory() as session:
            assert await queries.get_chat_by_id(session, id=chat_id) is None

    @pytest.mark.asyncio
    async def test_chats_listed_newest_first(self, session: AsyncSession, user: User) -> None:
        first = await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="one")
        second = await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="two")

        chats = await queries.get_chats_by_user_id(session, id=user.id)

        assert [c.id for c in chats] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_chats_scoped_to_owner(
        self, session: AsyncSession, user: User, other_user: User
    ) -> None:
        await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="mine")

        assert await queries.get_chats_by_user_id(session, id=other_user.id) == []

    @pytest.mark.asyncio
    async def test_chat_defaults_to_private(self, session: AsyncSession, user: User) -> None:
        chat = await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="t")

        assert chat.visibility == Visibility.private

    @pytest.mark.asyncio
    async def test_chat_for_unknown_user_is_foreign_key_error(self, session: AsyncSession) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await queries.save_chat(session, id=uuid.uuid4(), user_id=uuid.uuid4(), title="t")

        assert exc_info.value.kind == DatabaseErrorKind.foreign_key

    @pytest.mark.asyncio
    async def test_session_usable_after_translated_error(
        self, session: AsyncSession, user: User
    ) -> None:
        with pytest.raises(DatabaseError):
            await queries.save_chat(session, id=uuid.uuid4(), user_id=uuid.uuid4(), title="t")

        chat = await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="ok")
        assert await queries.get_chat_by_id(session, id=chat.id) is not None

    @pytest.mark.asyncio
    async def test_get_missing_chat_is_none(self, session: AsyncSession) -> None:
        assert await queries.get_chat_by_id(session, id=uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_delete_chat_removes_messages_and_votes(
        self, session: AsyncSession, user: User
    ) -> None:
        chat_id, message_ids = await _chat_with_messages(session, user)
        await queries.vote_message(session, chat_id=chat_id, message_id=message_ids[1], type="up")

        deleted = await queries.delete_chat_by_id(session, id=chat_id)

        assert deleted.id == chat_id
        assert await queries.get_chat_by_id(session, id=chat_id) is None
        assert await _count(session, MessageDB, chat_id=chat_id) == 0
        assert await _count(session, VoteDB, chat_id=chat_id) == 0

    @pytest.mark.asyncio
    async def test_delete_missing_chat_is_not_found(self, session: AsyncSession) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await queries.delete_chat_by_id(session, id=uuid.uuid4())

        assert exc_info.value.kind == DatabaseErrorKind.not_found
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_update_visibility(self, session: AsyncSession, user: User) -> None:
        chat = await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="t")

        updated = await queries.update_chat_visibility_by_id(
            session, chat_id=chat.id, visibility=Visibility.public
        )

        assert updated.visibility == Visibility.public
        fetched = await queries.get_chat_by_id(session, id=chat.id)
        assert fetched is not None
        assert fetched.visibility == Visibility.public

    @pytest.mark.asyncio
    async def test_update_visibility_of_missing_chat(self, session: AsyncSession) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await queries.update_chat_visibility_by_id(
                session, chat_id=uuid.uuid4(), visibility=Visibility.public
            )

        assert exc_info.value.kind == DatabaseErrorKind.not_found


class TestMessages:
    @pytest.mark.asyncio
    async def test_messages_in_created_order(self, session: AsyncSession, user: User) -> None:
        chat_id, message_ids = await _chat_with_messages(session, user, count=4)

        messages = await queries.get_messages_by_chat_id(session, id=chat_id)

        assert [m.id for m in messages] == message_ids
        timestamps = [m.created_at for m in messages]
        assert timestamps == sorted(timestamps)
        assert messages[0].content == {"parts": [{"type": "text", "text": "message 0"}]}

    @pytest.mark.asyncio
    async def test_save_messages_returns_count(self, session: AsyncSession, user: User) -> None:
        chat = await queries.save_chat(session, id=uuid.uuid4(), user_id=user.id, title="t")

        count = await queries.save_messages(
            session,
            messages=[
                NewMessage(chat_id=chat.id, role="user", content="hi"),
                NewMessage(chat_id=chat.id, role="assistant", content="hello"),
            ],
        )

        assert count == 2

    @pytest.mark.asyncio
    async def test_message_for_unknown_chat_is_foreign_key_error(
        self, session: AsyncSession
    ) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await queries.save_messages(
                session, messages=[NewMessage(chat_id=uuid.uuid4(), role="user", content="x")]
            )

        assert exc_info.value.kind == DatabaseErrorKind.foreign_key

    @pytest.mark.asyncio
    async def test_get_message_by_id(self, session: AsyncSession, user: User) -> None:
        chat_id, message_ids = await _chat_with_messages(session, user)

        message = await queries.get_message_by_id(session, id=message_ids[2])

        assert message is not None
        assert message.chat_id == chat_id
        assert await queries.get_message_by_id(session, id=uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_delete_after_timestamp_truncates_with_votes(
        self, session: AsyncSession, user: User
    ) -> None:
        chat_id, message_ids = await _chat_with_messages(session, user, count=4)
        await queries.vote_message(session, chat_id=chat_id, message_id=message_ids[0], type="up")
        await queries.vote_message(session, chat_id=chat_id, message_id=message_ids[3], type="down")

        deleted = await queries.delete_messages_by_chat_id_after_timestamp(
            session, chat_id=chat_id, timestamp=T0 + timedelta(minutes=1)
        )

        assert deleted == 2
        remaining = await queries.get_messages_by_chat_id(session, id=chat_id)
        assert [m.id for m in remaining] == message_ids[:2]
        votes = await queries.get_votes_by_chat_id(session, id=chat_id)
        assert [v.message_id for v in votes] == [message_ids[0]]


class TestVotes:
    @pytest.mark.asyncio
    async def test_vote_is_upserted(self, session: AsyncSession, user: User) -> None:
        chat_id, message_ids = await _chat_with_messages(session, user)

        await queries.vote_message(session, chat_id=chat_id, message_id=message_ids[0], type="up")
        vote = await queries.vote_message(
            session, chat_id=chat_id, message_id=message_ids[0], type="down"
        )

        assert vote.is_upvoted is False
        votes = await queries.get_votes_by_chat_id(session, id=chat_id)
        assert len(votes) == 1
        assert votes[0].is_upvoted is False

    @pytest.mark.asyncio
    async def test_repeated_vote_is_idempotent(self, session: AsyncSession, user: User) -> None:
        chat_id, message_ids = await _chat_with_messages(session, user)

        for _ in range(2):
            await queries.vote_message(
                session, chat_id=chat_id, message_id=message_ids[1], type="up"
            )

        votes = await queries.get_votes_by_chat_id(session, id=chat_id)
        assert [(v.message_id, v.is_upvoted) for v in votes] == [(message_ids[1], True)]

    @pytest.mark.asyncio
    async def test_concurrent_first_votes_both_succeed(
        self, session_factory: async_sessionmaker[AsyncSession], user: User
    ) -> None:
        async with session_factory() as session:
            chat_id, message_ids = await _chat_with_messages(session, user)

        async def cast(vote_type: VoteType) -> Vote:
            async with session_factory() as session:
                return await queries.vote_message(
                    session, chat_id=chat_id, message_id=message_ids[0], type=vote_type
                )

        results = await asyncio.gather(cast("up"), cast("down"), return_exceptions=True)

        assert not any(isinstance(result, Exception) for result in results)
        async with session_factory() as session:
            votes = await queries.get_votes_by_chat_id(session, id=chat_id)
        assert len(votes) == 1
        assert votes[0].message_id == message_ids[0]

    @pytest.mark.asyncio
    async def test_vote_on_unknown_message_is_foreign_key_error(
        self, session: AsyncSession, user: User
    ) -> None:
        chat_id, _ = await _chat_with_messages(session, user)

        with pytest.raises(DatabaseError) as exc_info:
            await queries.vote_message(
                session, chat_id=chat_id, message_id=uuid.uuid4(), type="up"
            )

        assert exc_info.value.kind == DatabaseErrorKind.foreign_key


class TestDocuments:
    @pytest.mark.asyncio
    async def test_versions_and_latest(self, session: AsyncSession, user: User) -> None:
        doc_id = uuid.uuid4()
        for content in ("v1", "v2", "v3"):
            await queries.save_document(
                session,
                id=doc_id,
                title="Essay",
                kind=DocumentKind.text,
                content=content,
                user_id=user.id,
            )

        versions = await queries.get_documents_by_id(session, id=doc_id)
        latest = await queries.get_document_by_id(session, id=doc_id)

        assert [d.content for d in versions] == ["v1", "v2", "v3"]
        assert latest is not None
        assert latest.content == "v3"
        assert latest.kind == DocumentKind.text

    @pytest.mark.asyncio
    async def test_missing_document(self, session: AsyncSession) -> None:
        assert await queries.get_document_by_id(session, id=uuid.uuid4()) is None
        assert await queries.get_documents_by_id(session, id=uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_delete_after_timestamp_removes_suggestions_first(
        self, session: AsyncSession, user: User
    ) -> None:
        doc_id = uuid.uuid4()
        versions = [
            await queries.save_document(
                session,
                id=doc_id,
                title="Script",
                kind=DocumentKind.code,
                content=f"print({i})",
                user_id=user.id,
            )
            for i in range(3)
        ]
        await queries.save_suggestions(
            session,
            suggestions=[
                NewSuggestion(
                    document_id=doc_id,
                    document_created_at=version.created_at,
                    original_text=f"print({i})",
                    suggested_text=f"print({i} + 1)",
                    user_id=user.id,
                )
                for i, version in enumerate(versions)
            ],
        )

        deleted = await queries.delete_documents_by_id_after_timestamp(
            session, id=doc_id, timestamp=versions[0].created_at
        )

        assert deleted == 2
        remaining = await queries.get_documents_by_id(session, id=doc_id)
        assert [d.content for d in remaining] == ["print(0)"]
        suggestions = await queries.get_suggestions_by_document_id(session, document_id=doc_id)
        assert [s.original_text for s in suggestions] == ["print(0)"]

    @pytest.mark.asyncio
    async def test_suggestion_for_unknown_version_is_foreign_key_error(
        self, session: AsyncSession, user: User
    ) -> None:
        with pytest.raises(DatabaseError) as exc_info:
            await queries.save_suggestions(
                session,
                suggestions=[
                    NewSuggestion(
                        document_id=uuid.uuid4(),
                        document_created_at=T0,
                        original_text="a",
                        suggested_text="b",
                        user_id=user.id,
                    )
                ],
            )

        assert exc_info.value.kind == DatabaseErrorKind.foreign_key

    @pytest.mark.asyncio
    async def test_suggestions_newest_first(self, session: AsyncSession, user: User) -> None:
        doc = await queries.save_document(
            session,
            id=uuid.uuid4(),
            title="Essay",
            kind=DocumentKind.text,
            content="The quick brown fox",
            user_id=user.id,
        )
        count = await queries.save_suggestions(
            session,
            suggestions=[
                NewSuggestion(
                    document_id=doc.id,
                    document_created_at=doc.created_at,
                    original_text=word,
                    suggested_text=word.upper(),
                    description="Emphasis",
                    user_id=user.id,
                    created_at=T0 + timedelta(seconds=i),
                )
                for i, word in enumerate(["quick", "brown"])
            ],
        )

        suggestions = await queries.get_suggestions_by_document_id(session, document_id=doc.id)

        assert count == 2
        assert [s.original_text for s in suggestions] == ["brown", "quick"]
        assert all(not s.is_resolved for s in suggestions)
