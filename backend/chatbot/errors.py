"""Domain-level errors shared by the API, orchestration and tool layers."""

from fastapi import status


class ChatbotError(Exception):
    """Base domain error."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class UnauthorizedError(ChatbotError):
    """No valid session for a path that requires one."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(ChatbotError):
    """Session is valid but does not own the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ChatbotError):
    """Document or chat absent."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ChatbotError):
    """Unique constraint violation surfaced to the caller."""

    status_code = status.HTTP_409_CONFLICT


class DataValidationError(ChatbotError):
    """Malformed input."""

    status_code = 422


class StorageError(ChatbotError):
    """Unexpected backend failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class UpstreamModelError(ChatbotError):
    """Language-model call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY


class ChannelClosedError(ChatbotError):
    """Client data channel no longer accepts events."""
