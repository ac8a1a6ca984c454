"""LLM client for document rewriting with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present for testing.
"""

import logging
import re
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from backend.chatbot.config import Settings, get_settings
from backend.chatbot.errors import UpstreamModelError

logger = logging.getLogger(__name__)

# A word with its surrounding whitespace
_WORD = re.compile(r"\s*\S+\s+")


class CodeDraft(BaseModel):
    """Schema the model fills when rewriting code documents."""

    code: str


class DocumentModel(Protocol):
    """Protocol for streaming language-model clients."""

    def stream_text(self, *, system: str, prompt: str) -> AsyncGenerator[str, None]:
        """Stream free text as ordered fragments.

        Concatenating every fragment yields the full response.
        """
        ...

    def stream_code(
        self, *, system: str, prompt: str
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Stream partial ``{"code": ...}`` snapshots in arrival order.

        Each snapshot carries the whole object parsed so far, not a fragment.
        """
        ...


async def smooth_words(fragments: AsyncIterator[str]) -> AsyncGenerator[str, None]:
    """Re-chunk provider deltas on word boundaries.

    Text is only regrouped, never altered, so the concatenation is unchanged.
    """
    buffer = ""
    async for fragment in fragments:
        buffer += fragment
        while match := _WORD.match(buffer):
            yield match.group(0)
            buffer = buffer[match.end() :]
    if buffer:
        yield buffer


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def stream_text(self, *, system: str, prompt: str) -> AsyncGenerator[str, None]:
        """Echo the prompt back word by word."""
        for match in re.finditer(r"\S+\s*", f"Updated document: {prompt}"):
            yield match.group(0)

    async def stream_code(
        self, *, system: str, prompt: str
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Build the code one line at a time, yielding cumulative snapshots."""
        lines = [f"# {prompt}", "def main():", "    pass"]
        for i in range(1, len(lines) + 1):
            yield {"code": "\n".join(lines[:i])}


class OpenAIClient:
    """OpenAI-backed streaming client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: AsyncOpenAI | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Model name to use
            client: Optional preconfigured AsyncOpenAI (for testing)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def _raw_text(self, system: str, prompt: str) -> AsyncGenerator[str, None]:
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def stream_text(self, *, system: str, prompt: str) -> AsyncGenerator[str, None]:
        """Stream text fragments, smoothed to whole words."""
        raw = self._raw_text(system, prompt)
        try:
            async with aclosing(raw), aclosing(smooth_words(raw)) as words:
                async for word in words:
                    yield word
        except openai.OpenAIError as e:
            logger.error(f"OpenAI text stream failed: {e}")
            raise UpstreamModelError(f"Language model call failed: {e}") from e

    async def stream_code(
        self, *, system: str, prompt: str
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Stream partial CodeDraft snapshots using structured outputs."""
        try:
            async with self.client.chat.completions.stream(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                response_format=CodeDraft,
            ) as stream:
                async for event in stream:
                    if event.type != "content.delta":
                        continue
                    parsed = event.parsed
                    if isinstance(parsed, BaseModel):
                        yield parsed.model_dump()
                    elif isinstance(parsed, dict):
                        yield parsed
        except openai.OpenAIError as e:
            logger.error(f"OpenAI object stream failed: {e}")
            raise UpstreamModelError(f"Language model call failed: {e}") from e


def create_llm_client(settings: Settings) -> DocumentModel:
    """Pick the client implementation for the given settings.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for document updates")
        return OpenAIClient(api_key=api_key.get_secret_value(), model=settings.openai_model)

    logger.warning("No OpenAI API key configured, using deterministic stub client")
    return DeterministicStubClient()


def get_llm_client() -> DocumentModel:
    """FastAPI dependency for the document model client."""
    return create_llm_client(get_settings())
