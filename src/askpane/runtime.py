"""Assemble an :class:`AskOrchestrator` from a validated config dict."""

from __future__ import annotations

from functools import partial
from typing import Any

from .capture import ScreenCapturer
from .credentials import ModelResolver
from .orchestrator import AskOrchestrator
from .prompts import PromptBuilder
from .providers import create_gateway
from .screenshots import ScreenshotQueue
from .state import StateBroadcaster
from .store import build_store


def build_orchestrator(
    config: dict[str, dict[str, Any]],
    *,
    capture_enabled: bool | None = None,
    broadcaster: StateBroadcaster | None = None,
) -> AskOrchestrator:
    provider = config["provider"]
    capture = config["capture"]
    prompt = config["prompt"]

    if capture_enabled is None:
        capture_enabled = bool(capture.get("enabled", True))
    capturer = (
        ScreenCapturer(
            monitor_index=int(capture["monitor_index"]),
            max_height=int(capture["max_height"]),
            jpeg_quality=int(capture["jpeg_quality"]),
        )
        if capture_enabled
        else None
    )

    return AskOrchestrator(
        resolver=ModelResolver(provider),
        store=build_store(config["persistence"]),
        prompt_builder=PromptBuilder(
            interview_mode=bool(prompt["interview_mode"]),
            custom_context=str(prompt["custom_context"]),
            history_window=int(prompt["history_window"]),
        ),
        capturer=capturer,
        queue=ScreenshotQueue(int(capture["queue_capacity"])),
        gateway_factory=partial(create_gateway, timeout=float(provider["timeout"])),
        broadcaster=broadcaster,
        profile=str(prompt["profile"]),
        screenshot_profile=str(prompt["screenshot_profile"]),
        search_enabled=bool(prompt["search_enabled"]),
        temperature=float(provider["temperature"]),
        max_tokens=int(provider["max_tokens"]),
    )
