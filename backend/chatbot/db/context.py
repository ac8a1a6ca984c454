"""Request context for ownership enforcement."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Authenticated identity of the caller.

    Supplied by the session boundary and passed to every write path that
    attributes rows to a user.
    """

    user_id: UUID
    email: str
