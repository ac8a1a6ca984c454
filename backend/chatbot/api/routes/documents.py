"""Document endpoints, including the streamed document update (SSE)."""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.chatbot.api.auth import get_current_context, get_optional_context
from backend.chatbot.db.context import RequestContext
from backend.chatbot.db.engine import get_session, get_sessionmaker
from backend.chatbot.db.queries import (
    delete_documents_by_id_after_timestamp,
    get_document_by_id,
    get_documents_by_id,
    get_suggestions_by_document_id,
    save_document,
    save_suggestions,
)
from backend.chatbot.errors import ChatbotError, ForbiddenError, NotFoundError
from backend.chatbot.llm.client import DocumentModel, get_llm_client
from backend.chatbot.models import (
    Document,
    DocumentKind,
    NewSuggestion,
    Suggestion,
    UpdateDocumentResult,
)
from backend.chatbot.orchestration.update_document import DocumentUpdater, QueueDataStream

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


class SaveDocumentRequest(BaseModel):
    """Request body for POST /documents. Reusing an id saves a new version."""

    id: uuid.UUID | None = None
    title: str = Field(..., min_length=1)
    kind: DocumentKind = DocumentKind.text
    content: str | None = None


class SuggestionIn(BaseModel):
    original_text: str = Field(..., min_length=1)
    suggested_text: str
    description: str | None = None


class UpdateDocumentRequest(BaseModel):
    description: str = Field(..., min_length=1, description="Requested change")


class CountResponse(BaseModel):
    count: int


def _check_owner(document: Document, ctx: RequestContext) -> None:
    if document.user_id != ctx.user_id:
        raise ForbiddenError("Access denied")


async def get_owned_document(
    session: AsyncSession, document_id: uuid.UUID, ctx: RequestContext
) -> Document:
    """Load the latest version of a document the caller owns.

    Raises:
        NotFoundError: If no version exists
        ForbiddenError: If it belongs to someone else
    """
    document = await get_document_by_id(session, id=document_id)
    if document is None:
        raise NotFoundError("Document not found", code="document_not_found")
    _check_owner(document, ctx)
    return document


@router.post("", response_model=Document, status_code=status.HTTP_201_CREATED)
async def create_document(
    request: SaveDocumentRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Document:
    """Save a document, or a new version of an existing one."""
    document_id = request.id or uuid.uuid4()

    if request.id is not None:
        existing = await get_document_by_id(session, id=document_id)
        if existing is not None:
            _check_owner(existing, ctx)

    return await save_document(
        session,
        id=document_id,
        title=request.title,
        kind=request.kind,
        content=request.content,
        user_id=ctx.user_id,
    )


@router.get("/{document_id}", response_model=Document)
async def get_document(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> Document:
    """Get the latest version of a document."""
    return await get_owned_document(session, document_id, ctx)


@router.get("/{document_id}/versions", response_model=list[Document])
async def list_versions(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[Document]:
    """List every version of a document, oldest first."""
    documents = await get_documents_by_id(session, id=document_id)
    if not documents:
        raise NotFoundError("Document not found", code="document_not_found")
    _check_owner(documents[-1], ctx)
    return documents


@router.delete("/{document_id}/versions", response_model=CountResponse)
async def delete_versions(
    document_id: uuid.UUID,
    after: Annotated[datetime, Query(description="Delete versions created after this instant")],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CountResponse:
    """Drop versions (and their suggestions) created after ``after``."""
    await get_owned_document(session, document_id, ctx)
    count = await delete_documents_by_id_after_timestamp(
        session, id=document_id, timestamp=after
    )
    return CountResponse(count=count)


@router.get("/{document_id}/suggestions", response_model=list[Suggestion])
async def list_suggestions(
    document_id: uuid.UUID,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[Suggestion]:
    """List suggestions across all versions of a document."""
    await get_owned_document(session, document_id, ctx)
    return await get_suggestions_by_document_id(session, document_id=document_id)


@router.post(
    "/{document_id}/suggestions",
    response_model=CountResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_suggestions(
    document_id: uuid.UUID,
    suggestions: list[SuggestionIn],
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CountResponse:
    """Attach suggestions to the latest version of a document."""
    document = await get_owned_document(session, document_id, ctx)
    count = await save_suggestions(
        session,
        suggestions=[
            NewSuggestion(
                document_id=document.id,
                document_created_at=document.created_at,
                user_id=ctx.user_id,
                **suggestion.model_dump(),
            )
            for suggestion in suggestions
        ],
    )
    return CountResponse(count=count)


@router.post("/{document_id}/update")
async def stream_document_update(
    document_id: uuid.UUID,
    request: UpdateDocumentRequest,
    ctx: Annotated[RequestContext | None, Depends(get_optional_context)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_sessionmaker)],
    model: Annotated[DocumentModel, Depends(get_llm_client)],
) -> StreamingResponse:
    """Rewrite a document and stream the result via SSE.

    Emits one ``data`` frame per channel event (clear, deltas, finish),
    then ``event: result`` with the update summary. Anonymous callers see
    the stream but no new version is saved.

    Returns:
        SSE stream; 404 before streaming if the document does not exist
    """
    # The stream outlives the request-scoped session, so it owns its own
    session = session_factory()
    updater = DocumentUpdater(session, model)
    try:
        document = await updater.load(document_id)
        if ctx is not None:
            _check_owner(document, ctx)
    except BaseException:
        await session.close()
        raise

    channel = QueueDataStream()
    user_id = ctx.user_id if ctx else None

    async def produce() -> UpdateDocumentResult:
        try:
            return await updater.run(document, request.description, channel, user_id)
        finally:
            channel.close()

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        task = asyncio.create_task(produce())
        try:
            async for event in channel.events():
                yield event.to_sse()

            result = await task
            yield "event: result\n"
            yield f"data: {result.model_dump_json()}\n\n"
        except ChatbotError as e:
            logger.error(f"Document update stream failed: {e.message}")
            yield "event: error\n"
            yield f"data: {json.dumps({'detail': e.message, 'code': e.code})}\n\n"
        finally:
            # Client gone or stream done: stop the run so nothing is persisted late
            channel.close()
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await session.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
