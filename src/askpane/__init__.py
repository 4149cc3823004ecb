"""Top-level package for askpane."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import AskPaneApp
    from .config import ensure_config_dir, load_config
    from .exceptions import (
        AskPaneError,
        ConfigValidationError,
        ErrorKind,
        MultimodalRejectedError,
        NotConfiguredError,
        ProviderError,
        SourceUnavailableError,
    )
    from .orchestrator import AskOrchestrator, SubmitResult
    from .screenshots import ScreenshotEntry, ScreenshotQueue
    from .state import RequestState
    from .stream_decoder import StreamDecoder

__all__ = [
    "AskOrchestrator",
    "AskPaneApp",
    "AskPaneError",
    "ConfigValidationError",
    "ErrorKind",
    "MultimodalRejectedError",
    "NotConfiguredError",
    "ProviderError",
    "RequestState",
    "ScreenshotEntry",
    "ScreenshotQueue",
    "SourceUnavailableError",
    "StreamDecoder",
    "SubmitResult",
    "ensure_config_dir",
    "load_config",
]

_LAZY_EXPORTS: dict[str, str] = {
    "AskOrchestrator": "orchestrator",
    "SubmitResult": "orchestrator",
    "AskPaneApp": "app",
    "ensure_config_dir": "config",
    "load_config": "config",
    "AskPaneError": "exceptions",
    "ConfigValidationError": "exceptions",
    "ErrorKind": "exceptions",
    "MultimodalRejectedError": "exceptions",
    "NotConfiguredError": "exceptions",
    "ProviderError": "exceptions",
    "SourceUnavailableError": "exceptions",
    "RequestState": "state",
    "ScreenshotEntry": "screenshots",
    "ScreenshotQueue": "screenshots",
    "StreamDecoder": "stream_decoder",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep the UI and capture stack optional at import time."""
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(f".{module_name}", __name__), name)
