"""Immutable action messages dispatched to the ask orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Submit:
    """Primary entry point: always accepted, supersedes any in-flight request."""

    question: str
    history_context: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Toggle:
    """Low-priority entry point used by hotkeys; dropped while busy."""

    screen_only: bool = False


@dataclass(frozen=True)
class Cancel:
    reason: str = "Cancelled by user"


@dataclass(frozen=True)
class Close:
    pass


@dataclass(frozen=True)
class CaptureScreenshot:
    """Capture the screen now and queue it for the next request."""


AskAction = Submit | Toggle | Cancel | Close | CaptureScreenshot
