"""Configuration loading and validation for askpane."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from platformdirs import user_config_path, user_state_path
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError
from .prompts import PROFILE_PROMPTS
from .screenshots import MAX_SCREENSHOT_QUEUE_SIZE

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = user_config_path("askpane")
CONFIG_PATH = CONFIG_DIR / "config.toml"
STATE_DIR = user_state_path("askpane")

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _non_empty(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata."""

    title: str = "askpane"

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _non_empty(value)


class ProviderConfig(BaseModel):
    """Completion provider endpoint, model and credential lookup."""

    name: str = "ollama"
    base_url: str = "http://localhost:11434/v1"
    model: str = "llama3.2-vision"
    api_key: str = ""
    api_key_env: str = "ASKPANE_API_KEY"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1, le=1_000_000)
    timeout: int = Field(default=120, ge=1, le=3600)

    @field_validator("name", "model", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _non_empty(value)

    @field_validator("api_key", "api_key_env", "base_url", mode="before")
    @classmethod
    def _normalize_optional_string(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()

    @model_validator(mode="after")
    def _validate_base_url(self) -> ProviderConfig:
        self.name = self.name.lower()
        if not self.base_url:
            return self
        parsed = urlparse(self.base_url)
        if parsed.scheme.lower() not in {"http", "https"}:
            raise ValueError("provider.base_url must use http or https scheme.")
        if not parsed.hostname:
            raise ValueError("provider.base_url must include a hostname.")
        self.base_url = self.base_url.rstrip("/")
        return self


class CaptureConfig(BaseModel):
    """Screen capture and screenshot queue settings."""

    enabled: bool = True
    monitor_index: int = Field(default=1, ge=0, le=64)
    max_height: int = Field(default=384, ge=64, le=8192)
    jpeg_quality: int = Field(default=80, ge=1, le=95)
    queue_capacity: int = Field(default=MAX_SCREENSHOT_QUEUE_SIZE, ge=1, le=100)


class PromptConfig(BaseModel):
    """System prompt profile selection."""

    profile: str = "analysis"
    screenshot_profile: str = "screenshot_analysis"
    history_window: int = Field(default=30, ge=1, le=1000)
    search_enabled: bool = False
    interview_mode: bool = False
    custom_context: str = ""

    @field_validator("profile", "screenshot_profile", mode="before")
    @classmethod
    def _validate_profile(cls, value: Any) -> str:
        normalized = _non_empty(value)
        if normalized not in PROFILE_PROMPTS:
            raise ValueError(f"Unknown prompt profile {normalized!r}.")
        return normalized

    @field_validator("custom_context", mode="before")
    @classmethod
    def _normalize_context(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("custom_context must be a string.")
        return value.strip()


class PersistenceConfig(BaseModel):
    """Conversation session storage."""

    enabled: bool = True
    directory: str = str(STATE_DIR / "sessions")

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_path_string(cls, value: Any) -> str:
        return _non_empty(value)


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = str(STATE_DIR / "askpane.log")

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _non_empty(value)


class KeybindsConfig(BaseModel):
    """Keyboard action mapping."""

    toggle_ask: str = "ctrl+t"
    capture_screenshot: str = "ctrl+s"
    screen_only_ask: str = "ctrl+r"
    close_ask: str = "escape"
    quit: str = "ctrl+q"

    @field_validator("*", mode="before")
    @classmethod
    def _validate_keybind(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Keybind must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("Keybind must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    provider: ProviderConfig = ProviderConfig()
    capture: CaptureConfig = CaptureConfig()
    prompt: PromptConfig = PromptConfig()
    persistence: PersistenceConfig = PersistenceConfig()
    logging: LoggingConfig = LoggingConfig()
    keybinds: KeybindsConfig = KeybindsConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(by_alias=True)


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort 0600 permissions; the file may hold an API key."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning(
            "config.invalid",
            extra={"event": "config.invalid", "errors": exc.error_count()},
        )
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else _safe_default_config()
    )
    return _validate_config(merged)
