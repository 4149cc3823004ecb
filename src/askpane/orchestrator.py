"""Request lifecycle orchestrator for the ask surface.

Owns the single :class:`RequestState`, the one live :class:`PendingRequest`,
the screenshot queue consumer side, and the multimodal-to-text fallback.
Each submission runs in its own asyncio task; a newer submission cancels the
older one and waits for its cleanup before publishing its own loading state,
so observers never see tokens of two streams interleaved.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from functools import partial
import inspect
import logging
from typing import Any

from .actions import AskAction, CaptureScreenshot, Cancel, Close, Submit, Toggle
from .credentials import ModelInfo
from .exceptions import (
    ErrorKind,
    ProviderError,
    SourceUnavailableError,
    StoreError,
    classify_error,
)
from .prompts import SCREENSHOT_ONLY_REQUEST, PromptBuilder
from .providers import ProviderGateway, ProviderPayload, StreamHandle, create_gateway
from .screenshots import ScreenshotEntry, ScreenshotQueue
from .state import RequestState, StateBroadcaster, StateObserver
from .store import ConversationStore
from .stream_decoder import StreamDecoder
from .task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

ACTIVE_REQUEST = "active_request"
ASK_SESSION_KIND = "ask"

GatewayFactory = Callable[[ModelInfo], ProviderGateway]


class CancellationToken:
    """One-shot cancellation flag with a reason and synchronous callbacks."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[str], Any]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def add_callback(self, callback: Callable[[str], Any]) -> None:
        if self._cancelled:
            callback(self._reason or "")
            return
        self._callbacks.append(callback)

    def cancel(self, reason: str) -> bool:
        """Cancel the token. Returns False when it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception:
                LOGGER.exception(
                    "ask.token.callback_failed",
                    extra={"event": "ask.token.callback_failed"},
                )
        return True


@dataclass
class PendingRequest:
    """Everything that lives exactly as long as one submission."""

    question: str
    history_context: tuple[str, ...] = ()
    token: CancellationToken = field(default_factory=CancellationToken)
    screenshots_used: tuple[ScreenshotEntry, ...] = ()
    session_id: str | None = None
    task: asyncio.Task[SubmitResult] | None = None
    finalizing: bool = False


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of one submission once its stream has ended."""

    ok: bool
    answer: str = ""
    error_kind: ErrorKind | None = None
    error: str | None = None
    screenshots_used: int = 0
    fell_back_to_text: bool = False
    session_id: str | None = None


class AskOrchestrator:
    """State machine behind the ask surface: ``Idle -> Loading -> Streaming -> Idle``."""

    def __init__(
        self,
        *,
        resolver: Any,
        store: ConversationStore,
        prompt_builder: PromptBuilder | None = None,
        capturer: Any | None = None,
        queue: ScreenshotQueue | None = None,
        gateway_factory: GatewayFactory | None = None,
        broadcaster: StateBroadcaster | None = None,
        profile: str = "analysis",
        screenshot_profile: str = "screenshot_analysis",
        search_enabled: bool = False,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: float = 120.0,
    ) -> None:
        self._resolver = resolver
        self._store = store
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._capturer = capturer
        self.queue = queue if queue is not None else ScreenshotQueue()
        self._gateway_factory = gateway_factory or partial(
            create_gateway, timeout=timeout
        )
        self._broadcaster = broadcaster or StateBroadcaster()
        self.profile = profile
        self.screenshot_profile = screenshot_profile
        self.search_enabled = search_enabled
        self.temperature = temperature
        self.max_tokens = max_tokens

        self._state = RequestState()
        self._pending: PendingRequest | None = None
        self._tasks = TaskManager()
        self._transition_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def pending(self) -> PendingRequest | None:
        return self._pending

    def subscribe(self, observer: StateObserver) -> None:
        self._broadcaster.subscribe(observer)

    def unsubscribe(self, observer: StateObserver) -> None:
        self._broadcaster.unsubscribe(observer)

    def _publish(self, **changes: Any) -> RequestState:
        self._state = self._state.evolve(**changes)
        self._broadcaster.publish(self._state)
        return self._state

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def dispatch(self, action: AskAction) -> Any:
        """Run one tagged action; UI and hotkeys talk to the orchestrator this way."""
        if isinstance(action, Submit):
            return await self.submit(action.question, action.history_context)
        if isinstance(action, Toggle):
            return await self.toggle(screen_only=action.screen_only)
        if isinstance(action, Cancel):
            return await self.cancel(action.reason)
        if isinstance(action, Close):
            return await self.close()
        if isinstance(action, CaptureScreenshot):
            return await self.capture_to_queue()
        raise TypeError(f"Unsupported action: {action!r}")

    async def submit(
        self, question: str, history_context: Sequence[str] = ()
    ) -> SubmitResult:
        """Ask ``question``, superseding any request still in flight."""
        async with self._transition_lock:
            previous = self._pending
            if previous is not None:
                await self._cancel_pending(previous, "New request received.")

            pending = PendingRequest(
                question=question, history_context=tuple(history_context)
            )
            self._pending = pending
            self._publish(
                visible=True,
                loading=True,
                streaming=False,
                question=question,
                answer="",
                show_composer=False,
                error=None,
            )
            LOGGER.info(
                "ask.request.submitted",
                extra={
                    "event": "ask.request.submitted",
                    "question_chars": len(question),
                    "superseded": previous is not None,
                },
            )
            task = asyncio.create_task(self._run(pending), name="askpane-request")
            pending.task = task
            self._tasks.add(task, name=ACTIVE_REQUEST)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            if not caller_cancelled and pending.token.cancelled:
                # Superseded before the request task got to run.
                return SubmitResult(
                    ok=False,
                    error_kind=ErrorKind.CANCELLED,
                    error=pending.token.reason,
                )
            if self._pending is pending:
                await self._cancel_pending(pending, "Caller cancelled.")
            raise

    async def toggle(self, *, screen_only: bool = False) -> bool:
        """Low-priority entry point. Never cancels an in-flight request.

        Returns False when the call was dropped because a request is busy.
        """
        state = self._state
        if state.busy or self._pending is not None:
            LOGGER.info(
                "ask.toggle.dropped",
                extra={"event": "ask.toggle.dropped", "phase": state.phase.value},
            )
            return False

        if screen_only and state.show_composer and state.visible:
            await self.submit("", ())
            return True

        if state.visible and state.answer:
            self._publish(show_composer=not state.show_composer)
        elif state.visible:
            self._publish(visible=False)
        else:
            self._publish(visible=True, show_composer=True)
        return True

    async def cancel(self, reason: str = "Cancelled by user") -> bool:
        """Cancel the pending request. Returns False (and changes nothing) when idle."""
        async with self._transition_lock:
            pending = self._pending
            if pending is None:
                return False
            await self._cancel_pending(pending, reason)
            return True

    async def close(self) -> None:
        """Cancel anything in flight and reset the surface to hidden and idle."""
        await self.cancel("Window closed by user")
        self._state = RequestState()
        self._broadcaster.publish(self._state)

    async def capture_to_queue(self) -> int:
        """Capture the screen now and queue it; returns the new queue size."""
        if self._capturer is None:
            raise SourceUnavailableError("Screen capture is disabled.")
        entry = await asyncio.to_thread(self._capturer.capture_now)
        return self.queue.enqueue(entry)

    def add_screenshot(self, entry: ScreenshotEntry) -> int:
        """Queue a screenshot produced elsewhere; returns the new queue size."""
        return self.queue.enqueue(entry)

    async def aclose(self) -> None:
        await self.cancel("Shutting down")
        await self._tasks.cancel_all()

    # ------------------------------------------------------------------
    # Request task
    # ------------------------------------------------------------------

    async def _cancel_pending(self, pending: PendingRequest, reason: str) -> None:
        if pending.token.cancel(reason):
            LOGGER.info(
                "ask.request.cancelled",
                extra={"event": "ask.request.cancelled", "reason": reason},
            )
        task = pending.task
        if task is not None and not task.done():
            if not pending.finalizing:
                task.cancel()
            await asyncio.wait({task})
        if self._pending is pending:
            # The task never started, so its cleanup did not run.
            self._pending = None
            self._publish(loading=False, streaming=False)

    async def _run(self, pending: PendingRequest) -> SubmitResult:
        decoder = StreamDecoder()
        gateway: ProviderGateway | None = None
        handle: StreamHandle | None = None
        fell_back = False
        error_kind: ErrorKind | None = None
        error_message: str | None = None

        try:
            pending.session_id = await self._open_session(pending.question)
            model_info = await self._resolve_model()
            screenshots, from_queue = await self._collect_screenshots()
            pending.screenshots_used = tuple(screenshots)
            payload = self._build_payload(pending, model_info, screenshots, from_queue)

            gateway = self._gateway_factory(model_info)
            handle, fell_back = await self._open_stream(gateway, payload)

            async with aclosing(decoder.iter_deltas(handle)) as deltas:
                async for _delta in deltas:
                    if pending.token.cancelled:
                        break
                    self._publish(loading=False, streaming=True, answer=decoder.text)
        except asyncio.CancelledError:
            if not pending.token.cancelled:
                raise
            error_kind = ErrorKind.CANCELLED
            error_message = pending.token.reason
        except Exception as exc:  # noqa: BLE001 - single error-handling point.
            error_kind = (
                classify_error(exc) if handle is None else ErrorKind.TRANSPORT_ERROR
            )
            error_message = str(exc) or exc.__class__.__name__
            LOGGER.warning(
                "ask.request.failed",
                extra={
                    "event": "ask.request.failed",
                    "error_kind": error_kind.value,
                    "error_type": exc.__class__.__name__,
                },
            )
        finally:
            pending.finalizing = True
            answer = decoder.text
            if self._pending is pending:
                self._pending = None
                changes: dict[str, Any] = {
                    "loading": False,
                    "streaming": False,
                    "answer": answer,
                }
                if error_kind not in (None, ErrorKind.CANCELLED):
                    changes.update(show_composer=True, error=error_message)
                self._publish(**changes)
            await self._release_stream(gateway, handle, pending)
            if answer and pending.session_id is not None:
                await self._persist(pending.session_id, "assistant", answer)

        if error_kind is None:
            LOGGER.info(
                "ask.request.completed",
                extra={
                    "event": "ask.request.completed",
                    "answer_chars": len(answer),
                    "fell_back_to_text": fell_back,
                },
            )
        return SubmitResult(
            ok=error_kind is None,
            answer=answer,
            error_kind=error_kind,
            error=error_message,
            screenshots_used=len(pending.screenshots_used),
            fell_back_to_text=fell_back,
            session_id=pending.session_id,
        )

    async def _release_stream(
        self,
        gateway: ProviderGateway | None,
        handle: StreamHandle | None,
        pending: PendingRequest,
    ) -> None:
        if gateway is None:
            return
        try:
            if handle is not None:
                if pending.token.cancelled:
                    await gateway.cancel(handle, pending.token.reason or "")
                else:
                    await handle.aclose()
        finally:
            await gateway.aclose()

    async def _open_session(self, question: str) -> str | None:
        session_id: str | None = None
        try:
            session_id = await asyncio.to_thread(
                self._store.get_or_create_active_session, ASK_SESSION_KIND
            )
            await asyncio.to_thread(
                self._store.append_message, session_id, "user", question.strip()
            )
        except StoreError as exc:
            LOGGER.warning(
                "ask.store.user_message_failed",
                extra={"event": "ask.store.user_message_failed", "error": str(exc)},
            )
        return session_id

    async def _persist(self, session_id: str, role: str, text: str) -> None:
        try:
            await asyncio.to_thread(self._store.append_message, session_id, role, text)
        except StoreError as exc:
            LOGGER.warning(
                "ask.store.answer_failed",
                extra={"event": "ask.store.answer_failed", "error": str(exc)},
            )

    async def _resolve_model(self) -> ModelInfo:
        info = self._resolver.get_current_model()
        if inspect.isawaitable(info):
            info = await info
        return info

    async def _collect_screenshots(self) -> tuple[list[ScreenshotEntry], bool]:
        """Drain the queue, or take one fresh capture when it is empty.

        Returns the screenshots and whether they came from the queue.
        """
        queued = self.queue.drain_all()
        if queued:
            return queued, True
        if self._capturer is None:
            return [], False
        try:
            entry = await asyncio.to_thread(self._capturer.capture_now)
        except SourceUnavailableError as exc:
            LOGGER.info(
                "ask.capture.unavailable",
                extra={"event": "ask.capture.unavailable", "error": str(exc)},
            )
            return [], False
        return [entry], False

    def _build_payload(
        self,
        pending: PendingRequest,
        model_info: ModelInfo,
        screenshots: list[ScreenshotEntry],
        from_queue: bool,
    ) -> ProviderPayload:
        use_queued = from_queue and bool(screenshots)
        profile = self.screenshot_profile if use_queued else self.profile
        system_prompt = self._prompt_builder.build_system_prompt(
            profile, pending.history_context, self.search_enabled
        )
        user_text = pending.question.strip()
        if use_queued and not user_text:
            user_text = SCREENSHOT_ONLY_REQUEST.format(count=len(screenshots))
        return ProviderPayload.for_question(
            model=model_info.model,
            system_prompt=system_prompt,
            user_text=user_text,
            screenshots=screenshots,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def _open_stream(
        self, gateway: ProviderGateway, payload: ProviderPayload
    ) -> tuple[StreamHandle, bool]:
        """Open the stream, retrying once text-only after a multimodal rejection."""
        try:
            return await gateway.open(payload), False
        except ProviderError as exc:
            if (
                payload.image_count == 0
                or classify_error(exc) is not ErrorKind.MULTIMODAL_REJECTED
            ):
                raise
            LOGGER.info(
                "ask.stream.fallback",
                extra={
                    "event": "ask.stream.fallback",
                    "images_dropped": payload.image_count,
                    "error": str(exc),
                },
            )
        return await gateway.open(payload.text_only()), True
