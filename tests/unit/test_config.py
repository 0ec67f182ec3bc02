"""
Unit tests for flashchat.config module.

Created by orpheus497

Tests default values, TOML loading and environment overrides.
"""

import pytest

from flashchat.config import Config
from flashchat.errors import ConfigError


class TestConfig:
    """Test configuration loading."""

    def test_defaults(self, temp_dir):
        """Test that a missing file yields the defaults."""
        config = Config(temp_dir / "config.toml")

        assert config.get("share", "param") == "data"
        assert config.get("ui", "mode") == "signal"
        assert config.get("missing", "key", "fallback") == "fallback"

    def test_file_overrides_defaults(self, temp_dir):
        """Test that TOML values are merged over defaults."""
        path = temp_dir / "config.toml"
        path.write_text('[share]\nbase_url = "https://example.org/chat"\n', encoding="utf-8")

        config = Config(path)

        assert config.get("share", "base_url") == "https://example.org/chat"
        assert config.get("share", "param") == "data"

    def test_env_override(self, temp_dir, monkeypatch):
        """Test FLASHCHAT_SECTION_KEY environment overrides."""
        monkeypatch.setenv("FLASHCHAT_LOGGING_FILE_LOGGING", "yes")
        monkeypatch.setenv("FLASHCHAT_UI_THEME", "light")

        config = Config(temp_dir / "config.toml")

        assert config.get("logging", "file_logging") is True
        assert config.get("ui", "theme") == "light"

    def test_env_override_does_not_leak(self, temp_dir, monkeypatch):
        """Test that overrides never modify the module defaults."""
        monkeypatch.setenv("FLASHCHAT_UI_THEME", "light")
        Config(temp_dir / "a.toml")
        monkeypatch.delenv("FLASHCHAT_UI_THEME")

        assert Config(temp_dir / "b.toml").get("ui", "theme") == "dark"

    def test_parse_error(self, temp_dir):
        """Test that invalid TOML raises ConfigError."""
        path = temp_dir / "config.toml"
        path.write_text("[share\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            Config(path)

    def test_save_and_reload(self, temp_dir):
        """Test that saved values load back."""
        path = temp_dir / "config.toml"
        config = Config(path)
        config.set("share", "base_url", "https://saved.example/")
        config.save()

        assert Config(path).get("share", "base_url") == "https://saved.example/"

    def test_store_path(self, temp_dir):
        """Test the derived store location."""
        config = Config(temp_dir / "config.toml")
        config.set("storage", "data_dir", str(temp_dir))

        assert config.store_path == temp_dir / "store.json"

    def test_create_example(self, temp_dir):
        """Test writing an example configuration."""
        path = temp_dir / "example.toml"
        Config.create_example(path)

        assert Config(path).get("share", "param") == "data"
