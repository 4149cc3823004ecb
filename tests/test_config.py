"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path
import stat
import tempfile
import unittest

from askpane.config import DEFAULT_CONFIG, ensure_config_dir, load_config


class ConfigTests(unittest.TestCase):
    """Validate config merge and fallback behavior."""

    def load(self, text: str | None) -> dict:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            if text is not None:
                config_path.write_text(text.strip(), encoding="utf-8")
            return load_config(config_path=config_path)

    def test_missing_config_uses_defaults(self) -> None:
        config = self.load(None)

        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertEqual(config["provider"]["name"], "ollama")
        self.assertEqual(config["provider"]["base_url"], "http://localhost:11434/v1")
        self.assertEqual(config["provider"]["api_key_env"], "ASKPANE_API_KEY")
        self.assertEqual(config["capture"]["queue_capacity"], 10)
        self.assertEqual(config["capture"]["max_height"], 384)
        self.assertEqual(config["prompt"]["history_window"], 30)
        self.assertTrue(config["persistence"]["enabled"])

    def test_partial_config_overrides_selected_values(self) -> None:
        config = self.load(
            """
[provider]
name = "OpenRouter"
base_url = "https://openrouter.ai/api/v1/"
model = "openai/gpt-4o"

[capture]
enabled = false

[prompt]
interview_mode = true
custom_context = "  Resume text  "
            """
        )

        self.assertEqual(config["provider"]["name"], "openrouter")
        self.assertEqual(config["provider"]["base_url"], "https://openrouter.ai/api/v1")
        self.assertEqual(config["provider"]["model"], "openai/gpt-4o")
        self.assertFalse(config["capture"]["enabled"])
        self.assertTrue(config["prompt"]["interview_mode"])
        self.assertEqual(config["prompt"]["custom_context"], "Resume text")
        self.assertEqual(config["app"]["title"], DEFAULT_CONFIG["app"]["title"])
        self.assertEqual(config["keybinds"], DEFAULT_CONFIG["keybinds"])

    def test_invalid_values_fallback_to_defaults(self) -> None:
        with self.assertLogs("askpane.config", level="WARNING"):
            config = self.load(
                """
[capture]
queue_capacity = 0

[prompt]
profile = "does-not-exist"
                """
            )

        self.assertEqual(config, DEFAULT_CONFIG)

    def test_non_http_base_url_is_rejected(self) -> None:
        config = self.load('[provider]\nbase_url = "ftp://example.com"')

        self.assertEqual(config["provider"]["base_url"], DEFAULT_CONFIG["provider"]["base_url"])

    def test_unparseable_toml_uses_defaults(self) -> None:
        with self.assertLogs("askpane.config", level="WARNING"):
            config = self.load("[provider\nname = ")

        self.assertEqual(config, DEFAULT_CONFIG)

    @unittest.skipIf(os.name != "posix", "POSIX permissions only")
    def test_config_file_permissions_are_tightened(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text('[provider]\napi_key = "sk-test"\n', encoding="utf-8")
            config_path.chmod(0o644)

            config = load_config(config_path=config_path)

            self.assertEqual(config["provider"]["api_key"], "sk-test")
            self.assertEqual(stat.S_IMODE(config_path.stat().st_mode), 0o600)

    def test_ensure_config_dir_creates_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "nested" / "askpane"

            self.assertEqual(ensure_config_dir(target), target)
            self.assertTrue(target.is_dir())


if __name__ == "__main__":
    unittest.main()
