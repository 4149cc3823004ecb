"""Bounded FIFO queue of screenshots waiting for the next ask request."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
import logging
import threading
import time

LOGGER = logging.getLogger(__name__)

MAX_SCREENSHOT_QUEUE_SIZE = 10


@dataclass(frozen=True)
class ScreenshotEntry:
    """One captured image. Entries are never mutated after creation."""

    image_bytes: bytes
    width: int | None = None
    height: int | None = None
    captured_at: float = field(default_factory=time.time)
    mime_type: str = "image/jpeg"

    def to_base64(self) -> str:
        return base64.b64encode(self.image_bytes).decode("ascii")

    def to_data_url(self) -> str:
        """Return the image as a ``data:`` URL suitable for ``image_url`` parts."""
        return f"data:{self.mime_type};base64,{self.to_base64()}"


class ScreenshotQueue:
    """Thread-safe bounded FIFO of :class:`ScreenshotEntry` objects.

    Capture producers and the orchestrator consumer share one lock that is
    only held for the append/evict or the read/clear step.
    """

    def __init__(self, capacity: int = MAX_SCREENSHOT_QUEUE_SIZE) -> None:
        self.capacity = max(1, capacity)
        self._entries: list[ScreenshotEntry] = []
        self._lock = threading.Lock()

    def enqueue(self, entry: ScreenshotEntry) -> int:
        """Append ``entry``, evicting the oldest capture beyond capacity.

        Returns the queue size after the append.
        """
        evicted = 0
        with self._lock:
            self._entries.append(entry)
            while len(self._entries) > self.capacity:
                del self._entries[self._oldest_index()]
                evicted += 1
            size = len(self._entries)
        LOGGER.info(
            "screenshots.enqueued",
            extra={"event": "screenshots.enqueued", "size": size, "evicted": evicted},
        )
        return size

    def _oldest_index(self) -> int:
        # min() returns the first minimum, so ties go to the earliest insertion.
        return min(
            range(len(self._entries)), key=lambda i: self._entries[i].captured_at
        )

    def drain_all(self) -> list[ScreenshotEntry]:
        """Remove and return every queued entry in insertion order."""
        with self._lock:
            drained, self._entries = self._entries, []
        if drained:
            LOGGER.info(
                "screenshots.drained",
                extra={"event": "screenshots.drained", "count": len(drained)},
            )
        return drained

    def clear(self) -> int:
        """Discard all entries and return how many were dropped."""
        with self._lock:
            dropped = len(self._entries)
            self._entries = []
        return dropped

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_empty(self) -> bool:
        return self.size() == 0

    def __len__(self) -> int:
        return self.size()
