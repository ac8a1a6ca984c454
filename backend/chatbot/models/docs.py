"""Document and suggestion models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from backend.chatbot.models.common import DocumentKind


class Document(BaseModel):
    """One version of a document; (id, created_at) identifies the version."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    title: str
    content: str | None = None
    kind: DocumentKind = DocumentKind.text
    user_id: UUID


class Suggestion(BaseModel):
    """Proposed edit to a specific document version."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    document_created_at: datetime
    original_text: str
    suggested_text: str
    description: str | None = None
    is_resolved: bool = False
    user_id: UUID
    created_at: datetime


class NewSuggestion(BaseModel):
    """Suggestion to insert. Identity and timestamp are assigned when omitted."""

    id: UUID | None = None
    document_id: UUID
    document_created_at: datetime
    original_text: str = Field(..., min_length=1)
    suggested_text: str
    description: str | None = None
    is_resolved: bool = False
    user_id: UUID
    created_at: datetime | None = None
