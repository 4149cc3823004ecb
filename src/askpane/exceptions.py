"""Domain exception hierarchy and provider error classification for askpane."""

from __future__ import annotations

from enum import Enum


class AskPaneError(RuntimeError):
    """Base class for all domain-level ask errors."""


class NotConfiguredError(AskPaneError):
    """Raised when no usable model or credential is configured."""


class ProviderError(AskPaneError):
    """Base class for failures reported by a streaming provider."""


class ProviderTransportError(ProviderError):
    """Raised when the provider cannot be reached or the connection drops."""


class ProviderHTTPError(ProviderError):
    """Raised when the provider answers with a non-success HTTP status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Provider streaming error ({status_code}): {body}")


class MultimodalRejectedError(ProviderError):
    """Raised when the provider declines image content in a request."""


class SourceUnavailableError(AskPaneError):
    """Raised when the screen capture collaborator cannot produce an image."""


class StoreError(AskPaneError):
    """Raised when the conversation store cannot read or write a session."""


class ConfigValidationError(AskPaneError):
    """Raised when configuration cannot be validated safely."""


class ErrorKind(str, Enum):
    """Failure classes surfaced by the request orchestrator."""

    NOT_CONFIGURED = "NOT_CONFIGURED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    MULTIMODAL_REJECTED = "MULTIMODAL_REJECTED"
    CANCELLED = "CANCELLED"
    SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"


# Known imprecision: "400" and "invalid" also match bad requests that have
# nothing to do with images, so those are retried text-only as well.
MULTIMODAL_ERROR_MARKERS: tuple[str, ...] = (
    "vision",
    "image",
    "multimodal",
    "unsupported",
    "image_url",
    "400",
    "invalid",
    "not supported",
)


def is_multimodal_rejection(message: str) -> bool:
    """Return True when an error message looks like a rejected image payload."""
    lower_message = (message or "").lower()
    return any(marker in lower_message for marker in MULTIMODAL_ERROR_MARKERS)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised while serving a request onto an ErrorKind."""
    if isinstance(exc, NotConfiguredError):
        return ErrorKind.NOT_CONFIGURED
    if isinstance(exc, SourceUnavailableError):
        return ErrorKind.SOURCE_UNAVAILABLE
    if isinstance(exc, MultimodalRejectedError):
        return ErrorKind.MULTIMODAL_REJECTED
    if isinstance(exc, ProviderError) and is_multimodal_rejection(str(exc)):
        return ErrorKind.MULTIMODAL_REJECTED
    return ErrorKind.TRANSPORT_ERROR
