"""Request state snapshots and the ordered broadcaster that publishes them."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class RequestPhase(str, Enum):
    """Finite state machine for the lifecycle of one ask request."""

    IDLE = "IDLE"
    LOADING = "LOADING"
    STREAMING = "STREAMING"


@dataclass(frozen=True)
class RequestState:
    """Immutable snapshot of the ask surface.

    At most one of ``loading`` and ``streaming`` is true. Both false means
    idle or finished.
    """

    visible: bool = False
    loading: bool = False
    streaming: bool = False
    question: str = ""
    answer: str = ""
    show_composer: bool = True
    error: str | None = None

    def __post_init__(self) -> None:
        if self.loading and self.streaming:
            raise ValueError("RequestState cannot be loading and streaming at once.")

    @property
    def phase(self) -> RequestPhase:
        if self.loading:
            return RequestPhase.LOADING
        if self.streaming:
            return RequestPhase.STREAMING
        return RequestPhase.IDLE

    @property
    def busy(self) -> bool:
        """Return True while a request is loading or streaming."""
        return self.loading or self.streaming

    def evolve(self, **changes: Any) -> RequestState:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


StateObserver = Callable[[RequestState], Any]


class StateBroadcaster:
    """Push state snapshots to observers in the order they were produced.

    Delivery is synchronous and fire-and-forget: an observer that raises is
    logged and skipped, the remaining observers still receive the snapshot.
    """

    def __init__(self) -> None:
        self._observers: list[StateObserver] = []

    def subscribe(self, observer: StateObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)
            LOGGER.debug("state.observer.subscribed")

    def unsubscribe(self, observer: StateObserver) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass

    def publish(self, snapshot: RequestState) -> None:
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                LOGGER.exception(
                    "state.observer.failed",
                    extra={"event": "state.observer.failed"},
                )

    def clear(self) -> None:
        self._observers.clear()
