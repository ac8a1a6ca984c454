"""Document update orchestrator.

Streams a rewritten document to the client data channel and saves the
result as a new version:

    clear -> text-delta* | code-delta* -> finish -> persist

Text documents stream fragments that the client appends. Code documents
stream whole snapshots that replace what the client shows. The channel is
written in arrival order and holds at most one undelivered event; a closed
channel or a cancelled task stops the run before anything is persisted.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from backend.chatbot.db.queries import get_document_by_id, save_document
from backend.chatbot.errors import ChannelClosedError, NotFoundError
from backend.chatbot.llm.client import DocumentModel
from backend.chatbot.llm.prompts import update_document_prompt
from backend.chatbot.models import DataStreamEvent, Document, DocumentKind, UpdateDocumentResult
from backend.chatbot.utils.logging import StructuredStreamLogger
from backend.chatbot.utils.metrics import PrometheusStreamMetrics

logger = logging.getLogger(__name__)

UPDATED_MESSAGE = "Document has been updated."


class DataStreamWriter(Protocol):
    """Client data channel."""

    async def write(self, event: DataStreamEvent) -> None:
        """Send one event. Raises ChannelClosedError once the channel is closed."""
        ...


class QueueDataStream:
    """In-process data channel holding at most one undelivered event.

    ``write`` waits until the consumer has taken the previous event, so the
    producer never runs ahead of the client. The consumer drains events with
    ``events()`` until the channel is closed. A writer blocked on a consumer
    that went away is released by cancelling its task.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[DataStreamEvent | None] = asyncio.Queue(maxsize=1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, event: DataStreamEvent) -> None:
        if self._closed:
            raise ChannelClosedError("Data stream is closed")
        await self._queue.put(event)

    def close(self) -> None:
        """Stop accepting events and wake the consumer. Safe to call twice.

        An event still waiting in the queue is delivered before ``events()``
        stops.
        """
        if self._closed:
            return
        self._closed = True
        if not self._queue.full():
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[DataStreamEvent]:
        while not (self._closed and self._queue.empty()):
            event = await self._queue.get()
            if event is None:
                return
            yield event


class TextDraftStreamer:
    """Streams free text; each fragment is appended to the draft."""

    kind = DocumentKind.text

    def __init__(self) -> None:
        self.draft = ""
        self.deltas = 0

    async def stream(
        self, model: DocumentModel, writer: DataStreamWriter, *, system: str, prompt: str
    ) -> str:
        async with aclosing(model.stream_text(system=system, prompt=prompt)) as fragments:
            async for fragment in fragments:
                self.draft += fragment
                await writer.write(DataStreamEvent(type="text-delta", content=fragment))
                self.deltas += 1
        return self.draft


class CodeDraftStreamer:
    """Streams code snapshots; each non-empty snapshot replaces the draft."""

    kind = DocumentKind.code

    def __init__(self) -> None:
        self.draft = ""
        self.deltas = 0

    async def stream(
        self, model: DocumentModel, writer: DataStreamWriter, *, system: str, prompt: str
    ) -> str:
        async with aclosing(model.stream_code(system=system, prompt=prompt)) as snapshots:
            async for snapshot in snapshots:
                code = snapshot.get("code")
                if not code:
                    continue
                await writer.write(DataStreamEvent(type="code-delta", content=code))
                self.draft = code
                self.deltas += 1
        return self.draft


DraftStreamer = TextDraftStreamer | CodeDraftStreamer

_STREAMERS: dict[DocumentKind, type[DraftStreamer]] = {
    DocumentKind.text: TextDraftStreamer,
    DocumentKind.code: CodeDraftStreamer,
}


def streamer_for(kind: DocumentKind) -> DraftStreamer:
    """Pick the streamer for a document kind."""
    return _STREAMERS[kind]()


class DocumentUpdater:
    """Runs document updates against one session and one model client."""

    def __init__(
        self,
        session: AsyncSession,
        model: DocumentModel,
        metrics: PrometheusStreamMetrics | None = None,
        stream_logger: StructuredStreamLogger | None = None,
    ):
        self.session = session
        self.model = model
        self.metrics = metrics or PrometheusStreamMetrics()
        self.stream_logger = stream_logger or StructuredStreamLogger()

    async def load(self, id: UUID) -> Document:
        """Fetch the latest version of a document.

        Raises:
            NotFoundError: If no version exists
        """
        document = await get_document_by_id(self.session, id=id)
        if document is None:
            raise NotFoundError("Document not found", code="document_not_found")
        return document

    async def run(
        self,
        document: Document,
        description: str,
        writer: DataStreamWriter,
        user_id: UUID | None,
    ) -> UpdateDocumentResult:
        """Stream an update of ``document`` and save it as a new version.

        Args:
            document: Latest version to rewrite
            description: What the caller wants changed
            writer: Client data channel
            user_id: Acting user; None means the result is not persisted

        Raises:
            ChannelClosedError: If the client channel closed mid-stream
            UpstreamModelError: If the language-model call failed
            DatabaseError: If the new version could not be saved
        """
        kind = document.kind
        streamer = streamer_for(kind)
        start = time.perf_counter()
        outcome = "error"
        error_reason: str | None = None
        persisted = False

        try:
            await writer.write(DataStreamEvent(type="clear", content=""))

            content = await streamer.stream(
                self.model,
                writer,
                system=update_document_prompt(document.content, kind),
                prompt=description,
            )

            await writer.write(DataStreamEvent(type="finish", content=""))

            if user_id is None:
                logger.warning(
                    "Document update without a user; new version not saved",
                    extra={"structured": {"document_id": str(document.id)}},
                )
            else:
                await save_document(
                    self.session,
                    id=document.id,
                    title=document.title,
                    kind=kind,
                    content=content,
                    user_id=user_id,
                )
                persisted = True

            outcome = "success"
            return UpdateDocumentResult(
                id=document.id,
                title=document.title,
                message=UPDATED_MESSAGE,
                persisted=persisted,
            )
        except ChannelClosedError:
            outcome = "channel_closed"
            raise
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except Exception as e:
            error_reason = str(e)
            raise
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_latency(kind.value, latency_ms)
            self.metrics.inc_outcome(kind.value, outcome)
            self.metrics.inc_deltas(kind.value, streamer.deltas)
            self.stream_logger.log_run(
                document.id,
                kind.value,
                outcome,
                latency_ms,
                streamer.deltas,
                persisted,
                error_reason,
            )


async def update_document(
    session: AsyncSession,
    model: DocumentModel,
    writer: DataStreamWriter,
    *,
    id: UUID,
    description: str,
    user_id: UUID | None,
) -> UpdateDocumentResult:
    """Load a document and stream its update in one call."""
    updater = DocumentUpdater(session, model)
    document = await updater.load(id)
    return await updater.run(document, description, writer, user_id)
