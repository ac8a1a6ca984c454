"""Models package - re-exports for convenience."""

from backend.chatbot.models.chat import Chat, ChatMessage, NewMessage, User, Vote
from backend.chatbot.models.common import DocumentKind, Visibility, VoteType
from backend.chatbot.models.docs import Document, NewSuggestion, Suggestion
from backend.chatbot.models.events import DataStreamEvent, StreamEventType, UpdateDocumentResult

__all__ = [
    "Chat",
    "ChatMessage",
    "DataStreamEvent",
    "Document",
    "DocumentKind",
    "NewMessage",
    "NewSuggestion",
    "StreamEventType",
    "Suggestion",
    "UpdateDocumentResult",
    "User",
    "Visibility",
    "Vote",
    "VoteType",
]
