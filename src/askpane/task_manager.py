"""Lifecycle tracking for the orchestrator's asyncio tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track named and anonymous asyncio tasks.

    A named slot holds at most one task. Anonymous tasks are kept alive until
    they finish and then drop themselves.
    """

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        """Register ``task``; a named task replaces (without cancelling) the old one."""
        if name is None:
            self._anonymous.add(task)
            task.add_done_callback(self._anonymous.discard)
            return
        self._named[name] = task
        task.add_done_callback(lambda done, key=name: self._release(key, done))

    def _release(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    async def cancel_all(self) -> None:
        """Cancel every tracked task and wait for all of them."""
        pending = [
            task
            for task in list(self._named.values()) + list(self._anonymous)
            if not task.done()
        ]
        self._named.clear()
        self._anonymous.clear()
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
