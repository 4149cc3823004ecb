"""Tests for CLI entrypoint wiring."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from copy import deepcopy
import io
import unittest
from unittest.mock import patch

from rich.console import Console

from askpane.__main__ import ask_once, main
from askpane.config import DEFAULT_CONFIG
from askpane.credentials import ModelInfo
from askpane.exceptions import NotConfiguredError
from askpane.orchestrator import AskOrchestrator
from askpane.providers import ProviderGateway, ProviderPayload, StreamHandle
from askpane.store import InMemoryConversationStore


class StaticResolver:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error

    def get_current_model(self) -> ModelInfo:
        if self.error is not None:
            raise self.error
        return ModelInfo("ollama", "llava", "", "http://localhost:11434/v1")


class CannedGateway(ProviderGateway):
    async def open(self, payload: ProviderPayload) -> StreamHandle:
        async def body() -> AsyncGenerator[bytes, None]:
            yield b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n'
            yield b'data: {"choices":[{"delta":{"content":"lo"}}]}\n'
            yield b"data: [DONE]\n"

        return StreamHandle(body())


def make_orchestrator(resolver: StaticResolver) -> AskOrchestrator:
    return AskOrchestrator(
        resolver=resolver,
        store=InMemoryConversationStore(),
        gateway_factory=lambda info: CannedGateway(),
    )


def buffer_console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, force_terminal=False, width=120), buffer


class MainEntrypointTests(unittest.TestCase):
    """Validate top-level main() behavior."""

    def test_main_ensures_config_and_runs_app(self) -> None:
        with patch("askpane.__main__.ensure_config_dir") as ensure_mock, patch(
            "askpane.__main__.load_config", return_value=deepcopy(DEFAULT_CONFIG)
        ), patch("askpane.__main__.configure_logging"), patch(
            "askpane.__main__.AskPaneApp"
        ) as app_cls_mock:
            main([])
            ensure_mock.assert_called_once()
            app_cls_mock.assert_called_once()
            app_cls_mock.return_value.run.assert_called_once()

    def test_no_capture_flag_disables_capture(self) -> None:
        config = deepcopy(DEFAULT_CONFIG)
        with patch("askpane.__main__.ensure_config_dir"), patch(
            "askpane.__main__.load_config", return_value=config
        ), patch("askpane.__main__.configure_logging"), patch(
            "askpane.__main__.AskPaneApp"
        ) as app_cls_mock:
            main(["--no-capture"])

        passed = app_cls_mock.call_args.kwargs["config"]
        self.assertFalse(passed["capture"]["enabled"])

    def test_version_flag_prints_version(self) -> None:
        with patch("builtins.print") as print_mock, patch(
            "askpane.__main__.AskPaneApp"
        ) as app_cls_mock:
            main(["--version"])

        self.assertTrue(print_mock.call_args.args[0].startswith("askpane "))
        app_cls_mock.assert_not_called()

    def test_ask_failure_exits_with_status_one(self) -> None:
        orchestrator = make_orchestrator(StaticResolver(NotConfiguredError("no model")))
        with patch("askpane.__main__.ensure_config_dir"), patch(
            "askpane.__main__.load_config", return_value=deepcopy(DEFAULT_CONFIG)
        ), patch("askpane.__main__.configure_logging"), patch(
            "askpane.__main__.build_orchestrator", return_value=orchestrator
        ), patch("askpane.__main__.Console", return_value=buffer_console()[0]):
            with self.assertRaises(SystemExit) as ctx:
                main(["--ask", "hello"])

        self.assertEqual(ctx.exception.code, 1)


class AskOnceTests(unittest.IsolatedAsyncioTestCase):
    async def test_streams_answer_to_console(self) -> None:
        console, out = buffer_console()
        error_console, err = buffer_console()

        status = await ask_once(
            make_orchestrator(StaticResolver()), "hi", console, error_console
        )

        self.assertEqual(status, 0)
        self.assertEqual(out.getvalue().strip(), "Hello")
        self.assertEqual(err.getvalue(), "")

    async def test_failure_reports_error_kind(self) -> None:
        console, _ = buffer_console()
        error_console, err = buffer_console()

        status = await ask_once(
            make_orchestrator(StaticResolver(NotConfiguredError("no model"))),
            "hi",
            console,
            error_console,
        )

        self.assertEqual(status, 1)
        self.assertIn("NOT_CONFIGURED", err.getvalue())
        self.assertIn("no model", err.getvalue())


if __name__ == "__main__":
    unittest.main()
