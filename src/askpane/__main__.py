"""CLI entrypoint for askpane."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from importlib import metadata

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape

from .app import AskPaneApp
from .config import ensure_config_dir, load_config
from .logging_utils import configure_logging
from .orchestrator import AskOrchestrator
from .runtime import build_orchestrator
from .state import RequestState


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="askpane",
        description="askpane - ask an AI model about what is on your screen",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--ask",
        metavar="TEXT",
        help="Ask one question without the TUI and stream the answer to stdout",
    )
    parser.add_argument(
        "--no-capture",
        action="store_true",
        help="Never capture the screen",
    )
    return parser


async def ask_once(
    orchestrator: AskOrchestrator,
    question: str,
    console: Console,
    error_console: Console,
) -> int:
    """Stream one answer to ``console``; returns the process exit status."""
    printed = 0

    def _echo(state: RequestState) -> None:
        nonlocal printed
        if len(state.answer) > printed:
            console.print(
                state.answer[printed:],
                end="",
                markup=False,
                highlight=False,
                soft_wrap=True,
            )
            printed = len(state.answer)

    orchestrator.subscribe(_echo)
    try:
        result = await orchestrator.submit(question)
    finally:
        orchestrator.unsubscribe(_echo)
        await orchestrator.aclose()

    if printed:
        console.print()
    if not result.ok:
        kind = result.error_kind.value if result.error_kind else "ERROR"
        message = escape(result.error or "request failed")
        error_console.print(f"[bold red]{kind}[/]: {message}")
        return 1
    if result.fell_back_to_text:
        error_console.print(
            Markdown("_The model rejected the screenshots; answered from text only._")
        )
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Ensure configuration exists, handle CLI flags, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("askpane")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"askpane {version}")
        return

    ensure_config_dir()
    config = load_config()
    if args.no_capture:
        config["capture"]["enabled"] = False

    configure_logging(config["logging"])
    if args.ask is not None:
        orchestrator = build_orchestrator(config)
        exit_code = asyncio.run(
            ask_once(orchestrator, args.ask, Console(), Console(stderr=True))
        )
        if exit_code:
            raise SystemExit(exit_code)
        return

    app = AskPaneApp(config=config)
    app.run()


if __name__ == "__main__":
    main()
