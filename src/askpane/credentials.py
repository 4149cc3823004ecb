"""Resolve the active model, endpoint and API key from configuration."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
import os
from typing import Any

from .exceptions import NotConfiguredError

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "ollama": "http://localhost:11434/v1",
}

# Local servers that accept requests without a bearer token.
KEYLESS_PROVIDERS: frozenset[str] = frozenset({"ollama"})


@dataclass(frozen=True)
class ModelInfo:
    """Everything needed to open a stream against one provider model."""

    provider: str
    model: str
    api_key: str
    base_url: str

    def __repr__(self) -> str:
        masked = "***" if self.api_key else ""
        return (
            f"ModelInfo(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={masked!r}, base_url={self.base_url!r})"
        )


class ModelResolver:
    """Read the ``[provider]`` config section into a :class:`ModelInfo`.

    The environment is consulted on every call so that a key exported after
    start-up is picked up by the next request.
    """

    def __init__(
        self,
        provider_config: Mapping[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = dict(provider_config)
        self._environ = environ if environ is not None else os.environ

    def _api_key(self) -> str:
        configured = str(self._config.get("api_key", "") or "").strip()
        if configured:
            return configured
        env_name = str(self._config.get("api_key_env", "") or "").strip()
        if env_name:
            return str(self._environ.get(env_name, "") or "").strip()
        return ""

    def get_current_model(self) -> ModelInfo:
        provider = str(self._config.get("name", "") or "").strip().lower()
        model = str(self._config.get("model", "") or "").strip()
        if not provider or not model:
            raise NotConfiguredError("AI model or provider not configured.")

        base_url = str(self._config.get("base_url", "") or "").strip()
        if not base_url:
            base_url = DEFAULT_BASE_URLS.get(provider, "")
        if not base_url:
            raise NotConfiguredError(
                f"No base_url configured for provider {provider!r}."
            )

        api_key = self._api_key()
        if not api_key and provider not in KEYLESS_PROVIDERS:
            raise NotConfiguredError("AI model or API key not configured.")

        info = ModelInfo(
            provider=provider, model=model, api_key=api_key, base_url=base_url
        )
        LOGGER.debug(
            "credentials.model.resolved",
            extra={
                "event": "credentials.model.resolved",
                "provider": provider,
                "model": model,
            },
        )
        return info
