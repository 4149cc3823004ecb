"""Decoder for OpenAI-style server-sent-event completion streams."""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
import codecs
import json
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class StreamDecoder:
    """Turn raw SSE bytes into answer deltas.

    Frames are newline-delimited. Only ``data:`` frames are significant; a
    ``data: [DONE]`` frame finishes decoding and anything buffered after it is
    dropped. Frames whose payload cannot be parsed are skipped without losing
    text accumulated so far.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._text = ""
        self.finished = False
        self.skipped_frames = 0

    @property
    def text(self) -> str:
        """Return all text decoded so far."""
        return self._text

    def feed(self, chunk: bytes) -> list[str]:
        """Consume ``chunk`` and return the non-empty deltas it completed."""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(chunk)
        deltas: list[str] = []
        while not self.finished:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            delta = self._handle_line(line)
            if delta:
                deltas.append(delta)
        if self.finished:
            self._buffer = ""
        return deltas

    def flush(self) -> list[str]:
        """Process a trailing frame that arrived without a final newline."""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        delta = self._handle_line(line)
        return [delta] if delta else []

    def _handle_line(self, raw_line: str) -> str:
        line = raw_line.strip()
        if not line.startswith(DATA_PREFIX):
            return ""
        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            self.finished = True
            return ""
        delta = self._extract_delta(data)
        if delta:
            self._text += delta
        return delta

    def _extract_delta(self, data: str) -> str:
        try:
            payload: Any = json.loads(data)
            choices = payload.get("choices") or []
            delta = choices[0].get("delta") or {}
            content = delta.get("content")
        except (ValueError, AttributeError, IndexError, KeyError, TypeError):
            self.skipped_frames += 1
            LOGGER.debug(
                "stream.frame.skipped",
                extra={"event": "stream.frame.skipped", "frame": data[:200]},
            )
            return ""
        return content if isinstance(content, str) else ""

    async def iter_deltas(
        self, source: AsyncIterator[bytes]
    ) -> AsyncGenerator[str, None]:
        """Yield deltas from ``source`` in arrival order.

        The source is always closed on exit, including when the terminator
        arrives before the source is exhausted.
        """
        try:
            async for chunk in source:
                for delta in self.feed(chunk):
                    yield delta
                if self.finished:
                    return
            for delta in self.flush():
                yield delta
        finally:
            closer = getattr(source, "aclose", None)
            if closer is not None:
                await closer()
