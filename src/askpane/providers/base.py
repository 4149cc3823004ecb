"""Provider gateway contract consumed by the ask orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
import logging
from typing import Any

from ..screenshots import ScreenshotEntry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderPayload:
    """One chat-completions request in OpenAI message format."""

    model: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 2048

    @classmethod
    def for_question(
        cls,
        *,
        model: str,
        system_prompt: str,
        user_text: str,
        screenshots: Sequence[ScreenshotEntry] = (),
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> ProviderPayload:
        """Build a system + user payload with one image part per screenshot."""
        content: list[dict[str, Any]] = [
            {"type": "text", "text": f"User Request: {user_text}"}
        ]
        for shot in screenshots:
            if shot.image_bytes:
                content.append(
                    {"type": "image_url", "image_url": {"url": shot.to_data_url()}}
                )
        return cls(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @property
    def image_count(self) -> int:
        count = 0
        for message in self.messages:
            content = message.get("content")
            if isinstance(content, list):
                count += sum(
                    1
                    for part in content
                    if isinstance(part, dict) and part.get("type") == "image_url"
                )
        return count

    def text_only(self) -> ProviderPayload:
        """Return an equivalent payload with every image part stripped."""
        messages: list[dict[str, Any]] = []
        for message in self.messages:
            content = message.get("content")
            if isinstance(content, list):
                texts = [
                    str(part.get("text", ""))
                    for part in content
                    if isinstance(part, dict) and part.get("type") == "text"
                ]
                message = {**message, "content": "\n".join(texts)}
            messages.append(message)
        return ProviderPayload(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    def to_request_body(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }


class StreamHandle:
    """An open response body that yields raw bytes until closed."""

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        closer: Callable[[], Awaitable[None]] | None = None,
        *,
        description: str = "",
    ) -> None:
        self._chunks = chunks
        self._closer = closer
        self.description = description
        self.closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks

    async def aclose(self) -> None:
        """Release the underlying body. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        chunk_closer = getattr(self._chunks, "aclose", None)
        try:
            # A generator suspended in a read cannot be closed from outside;
            # closing the body below makes that read fail instead.
            if chunk_closer is not None and not getattr(
                self._chunks, "ag_running", False
            ):
                await chunk_closer()
        finally:
            if self._closer is not None:
                await self._closer()


class ProviderGateway(ABC):
    """Uniform open/stream/cancel contract for streaming completion providers."""

    name: str = "provider"

    @abstractmethod
    async def open(self, payload: ProviderPayload) -> StreamHandle:
        """Start a streaming completion and return its handle.

        Raises a :class:`~askpane.exceptions.ProviderError` subclass when the
        provider refuses or cannot be reached.
        """

    async def cancel(self, handle: StreamHandle, reason: str) -> None:
        """Unblock any pending read against ``handle`` by closing it."""
        LOGGER.info(
            "provider.stream.cancel",
            extra={"event": "provider.stream.cancel", "reason": reason},
        )
        await handle.aclose()

    async def aclose(self) -> None:
        """Release transport resources held by the gateway."""
