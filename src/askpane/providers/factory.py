"""Build a provider gateway for the resolved model."""

from __future__ import annotations

from ..credentials import ModelInfo
from .base import ProviderGateway
from .openai_compatible import OpenAICompatibleGateway

OPENROUTER_HEADERS = {"X-Title": "askpane"}


def create_gateway(model_info: ModelInfo, *, timeout: float = 120.0) -> ProviderGateway:
    """Return a gateway able to stream completions for ``model_info``.

    Every supported provider speaks the OpenAI chat-completions protocol; only
    headers differ.
    """
    extra_headers: dict[str, str] = {}
    if model_info.provider == "openrouter":
        extra_headers.update(OPENROUTER_HEADERS)
    return OpenAICompatibleGateway(
        model_info.base_url,
        model_info.api_key,
        timeout=timeout,
        extra_headers=extra_headers,
    )
