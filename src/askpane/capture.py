"""Screen capture producing JPEG screenshot entries."""

from __future__ import annotations

import io
import logging
import time

import mss
from mss.exception import ScreenShotError
from PIL import Image

from .exceptions import SourceUnavailableError
from .screenshots import ScreenshotEntry

LOGGER = logging.getLogger(__name__)


class ScreenCapturer:
    """Grab one monitor with ``mss`` and encode it with Pillow."""

    def __init__(
        self,
        *,
        monitor_index: int = 1,
        max_height: int = 384,
        jpeg_quality: int = 80,
    ) -> None:
        self.monitor_index = monitor_index
        self.max_height = max_height
        self.jpeg_quality = jpeg_quality

    def capture_now(self) -> ScreenshotEntry:
        """Capture the configured monitor.

        Raises :class:`SourceUnavailableError` when no screen can be grabbed.
        """
        try:
            with mss.mss() as sct:
                # monitors[0] is the union of all screens; real ones start at 1.
                monitors = sct.monitors
                if len(monitors) < 2:
                    raise SourceUnavailableError("No screen sources available")
                index = self.monitor_index
                if index < 1 or index >= len(monitors):
                    index = 1
                shot = sct.grab(monitors[index])
                image = Image.frombytes("RGB", shot.size, shot.rgb)
        except (ScreenShotError, OSError) as exc:
            LOGGER.warning(
                "capture.failed",
                extra={"event": "capture.failed", "error": str(exc)},
            )
            raise SourceUnavailableError(f"Screen capture failed: {exc}") from exc
        return self.encode(image)

    def encode(self, image: Image.Image) -> ScreenshotEntry:
        """Downscale ``image`` to ``max_height`` and encode it as JPEG."""
        if self.max_height > 0 and image.height > self.max_height:
            width = max(1, round(image.width * self.max_height / image.height))
            image = image.resize((width, self.max_height), Image.Resampling.LANCZOS)
        if image.mode != "RGB":
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return ScreenshotEntry(
            image_bytes=buffer.getvalue(),
            width=image.width,
            height=image.height,
            captured_at=time.time(),
            mime_type="image/jpeg",
        )
