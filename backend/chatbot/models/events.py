"""Client data channel events emitted while a document is being rewritten."""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel

StreamEventType = Literal["clear", "text-delta", "code-delta", "finish"]


class DataStreamEvent(BaseModel):
    """One event on the client data channel.

    ``text-delta`` content is a fragment to append; ``code-delta`` content is
    the complete current code and replaces whatever the client displays.
    """

    type: StreamEventType
    content: str = ""

    def to_sse(self) -> str:
        """Serialize as a Server-Sent Events data frame."""
        return f"data: {self.model_dump_json()}\n\n"


class UpdateDocumentResult(BaseModel):
    """Summary returned to the caller of a document update."""

    id: UUID
    title: str
    message: str
    persisted: bool
