"""Common types and enums shared across all models."""

from enum import Enum
from typing import Literal


class Visibility(str, Enum):
    """Chat visibility."""

    private = "private"
    public = "public"


class DocumentKind(str, Enum):
    """Document kind; selects the streaming contract on update."""

    text = "text"
    code = "code"


VoteType = Literal["up", "down"]
