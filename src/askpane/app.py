"""Textual front end for the ask surface."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.widgets import Footer, Header, Input, Markdown, Static

from .actions import AskAction, CaptureScreenshot, Close, Submit, Toggle
from .config import load_config
from .exceptions import AskPaneError, ErrorKind
from .logging_utils import configure_logging
from .orchestrator import AskOrchestrator, SubmitResult
from .runtime import build_orchestrator
from .state import RequestState
from .task_manager import TaskManager

LOGGER = logging.getLogger(__name__)


class AskPaneApp(App[None]):
    """Ask about your screen; answers stream into a markdown pane."""

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #ask-root {
        layout: vertical;
        height: 1fr;
        padding: 0 1;
    }

    #question {
        color: $text-muted;
        padding: 1 0 0 0;
    }

    #answer {
        height: 1fr;
        border: round $panel;
        padding: 0 1;
    }

    #composer {
        margin: 1 0 0 0;
    }

    #status {
        height: 1;
        color: $text-muted;
    }
    """

    DEFAULT_ACTION_DESCRIPTIONS: dict[str, str] = {
        "toggle_ask": "Ask",
        "capture_screenshot": "Screenshot",
        "screen_only_ask": "Ask Screen",
        "close_ask": "Close",
        "quit": "Quit",
    }

    def __init__(
        self,
        config: dict[str, dict[str, Any]] | None = None,
        orchestrator: AskOrchestrator | None = None,
    ) -> None:
        self.config = config or load_config()
        if config is None:
            configure_logging(self.config["logging"])
        self.window_title = str(self.config["app"]["title"])
        self.orchestrator = orchestrator or build_orchestrator(self.config)
        self.status_text = ""
        self.rendered_answer = ""
        self._history: list[str] = []
        self._task_manager = TaskManager()
        self._binding_specs = self._binding_specs_from_config(self.config)
        super().__init__()

    @classmethod
    def _binding_specs_from_config(
        cls, config: dict[str, dict[str, Any]]
    ) -> list[Binding]:
        keybinds = config.get("keybinds", {})
        bindings: list[Binding] = []
        for action_name, description in cls.DEFAULT_ACTION_DESCRIPTIONS.items():
            binding_key = keybinds.get(action_name)
            if isinstance(binding_key, str) and binding_key.strip():
                bindings.append(
                    Binding(
                        key=binding_key.strip(),
                        action=action_name,
                        description=description,
                        show=True,
                    )
                )
        return bindings

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="ask-root"):
            yield Static("", id="question")
            yield Markdown("", id="answer")
            yield Input(placeholder="Ask about your screen...", id="composer")
        yield Static("", id="status")
        yield Footer()

    async def on_mount(self) -> None:
        self.title = self.window_title
        for binding in self._binding_specs:
            self.bind(
                binding.key,
                binding.action,
                description=binding.description,
                show=binding.show,
            )
        self.orchestrator.subscribe(self._on_state)
        if not self.orchestrator.state.visible:
            await self.orchestrator.toggle()
        await self._render_state(self.orchestrator.state)
        self.query_one("#composer", Input).focus()
        self._set_status("Ready.")

    async def on_unmount(self) -> None:
        self.orchestrator.unsubscribe(self._on_state)
        await self.orchestrator.aclose()
        await self._task_manager.cancel_all()

    def _on_state(self, state: RequestState) -> None:
        self.call_later(self._render_state, state)

    async def _render_state(self, state: RequestState) -> None:
        root = self.query_one("#ask-root", Container)
        composer = self.query_one("#composer", Input)
        root.display = state.visible
        composer.display = state.show_composer
        composer.disabled = state.busy
        self.query_one("#question", Static).update(
            f"> {state.question}" if state.question else ""
        )
        if state.answer != self.rendered_answer:
            self.rendered_answer = state.answer
            await self.query_one("#answer", Markdown).update(state.answer)

        if state.error:
            self._set_status(f"Error: {state.error}")
        elif state.loading:
            self._set_status("Thinking...")
        elif state.streaming:
            self._set_status("Streaming...")

    def _set_status(self, text: str) -> None:
        self.status_text = text
        self.query_one("#status", Static).update(text)

    def _spawn(self, action: AskAction) -> asyncio.Task[Any]:
        task = asyncio.create_task(self._run_action(action))
        self._task_manager.add(task)
        return task

    async def _run_action(self, action: AskAction) -> Any:
        try:
            result = await self.orchestrator.dispatch(action)
        except AskPaneError as exc:
            LOGGER.warning(
                "app.action.failed",
                extra={
                    "event": "app.action.failed",
                    "action": type(action).__name__,
                    "error": str(exc),
                },
            )
            self.call_later(self._set_status, f"Error: {exc}")
            return None

        # Status changes queue behind the renders of snapshots already published.
        if isinstance(action, CaptureScreenshot):
            self.call_later(
                self._set_status, f"Screenshot queued ({result} waiting)."
            )
        elif isinstance(result, SubmitResult):
            self.call_later(self._record_result, action, result)
        return result

    def _record_result(self, action: AskAction, result: SubmitResult) -> None:
        if result.ok:
            question = action.question if isinstance(action, Submit) else ""
            if question.strip():
                self._history.append(f"User: {question.strip()}")
            self._history.append(f"Assistant: {result.answer}")
            suffix = " (text only)" if result.fell_back_to_text else ""
            self._set_status(f"Done{suffix}.")
        elif result.error_kind is ErrorKind.CANCELLED:
            self._set_status("Cancelled.")

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "composer":
            return
        question = event.value.strip()
        event.input.value = ""
        if not question:
            return
        self._spawn(Submit(question, tuple(self._history)))

    async def action_toggle_ask(self) -> None:
        self._spawn(Toggle())

    async def action_screen_only_ask(self) -> None:
        self._spawn(Toggle(screen_only=True))

    async def action_capture_screenshot(self) -> None:
        self._spawn(CaptureScreenshot())

    async def action_close_ask(self) -> None:
        self._spawn(Close())

    async def action_quit(self) -> None:
        self.exit()
