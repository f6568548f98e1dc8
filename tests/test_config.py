"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from receiptflow.core import config
from receiptflow.core.exceptions import ConfigurationError
from receiptflow.core.config import (
    OCRSettings,
    ProviderSettings,
    Settings,
    WatcherSettings,
    _resolve_env_vars,
    reload_config,
)

SETTINGS_YAML = """
storage:
  inbox_path: "${TEST_INBOX:/srv/inbox}"
watcher:
  interval_seconds: 10
  supported_extensions: [".PDF", "Png"]
ocr:
  providers: [claude, openai]
  openai:
    api_key: "${OPENAI_API_KEY:openaiApiKey}"
    model: "gpt-4o"
    base_url: "https://api.openai.com/v1"
  claude:
    api_key: "${CLAUDE_API_KEY:claudeApiKey}"
    model: "claude-3-haiku-20240307"
    base_url: "https://api.anthropic.com/v1"
"""


class TestEnvResolution:
    """Tests for ${VAR:default} interpolation."""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("RF_TEST_VAR", raising=False)

        assert _resolve_env_vars("${RF_TEST_VAR:fallback}") == "fallback"

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("RF_TEST_VAR", "from-env")

        assert _resolve_env_vars({"a": ["${RF_TEST_VAR:fallback}"]}) == {"a": ["from-env"]}

    def test_non_strings_untouched(self):
        assert _resolve_env_vars(42) == 42


class TestSettingsLoad:
    """Tests for Settings.load."""

    def test_defaults_without_file(self, temp_dir):
        settings = Settings.load(temp_dir)

        assert settings.watcher.interval_seconds == 30
        assert settings.watcher.max_workers == 4
        assert settings.ocr.fallback_enabled is False
        assert settings.ocr.timeout_seconds == 60
        assert settings.ocr.providers == ["openai", "claude", "google"]

    def test_load_yaml(self, temp_dir, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("CLAUDE_API_KEY", "sk-ant-real")
        monkeypatch.delenv("TEST_INBOX", raising=False)
        (temp_dir / "settings.yaml").write_text(SETTINGS_YAML)

        settings = Settings.load(temp_dir)

        assert settings.storage.inbox_path == "/srv/inbox"
        assert settings.watcher.interval_seconds == 10
        assert settings.watcher.supported_extensions == ["pdf", "png"]
        assert settings.ocr.providers == ["claude", "openai"]
        assert settings.ocr.claude.has_credentials
        assert not settings.ocr.openai.has_credentials

    def test_environment_overrides(self, temp_dir, monkeypatch):
        monkeypatch.setenv("RECEIPTFLOW_WATCHER__MAX_WORKERS", "7")

        settings = Settings.load(temp_dir)

        assert settings.watcher.max_workers == 7

    def test_reload_replaces_global(self, temp_dir, monkeypatch):
        monkeypatch.setattr(config, "_settings", None)

        settings = reload_config(temp_dir)

        assert config.get_settings() is settings


class TestValidation:
    """Tests for settings validation."""

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            OCRSettings(providers=["openai", "tesseract"])

    def test_invalid_worker_count(self):
        with pytest.raises(ValidationError):
            WatcherSettings(max_workers=0)

    @pytest.mark.parametrize("key", ["", "   ", "openaiApiKey", "googleAiApiKey", "changeme"])
    def test_placeholder_keys_are_not_credentials(self, key):
        provider = ProviderSettings(api_key=key, model="m", base_url="https://example.invalid")

        assert not provider.has_credentials

    def test_real_key(self):
        provider = ProviderSettings(api_key="sk-live", model="m", base_url="https://example.invalid")

        assert provider.has_credentials

    def test_provider_accessor(self):
        settings = OCRSettings()

        assert settings.provider("google").model == "gemini-1.5-flash"
        with pytest.raises(KeyError):
            settings.provider("tesseract")


class TestInvalidFile:
    """Tests for broken settings files."""

    def test_bad_yaml(self, temp_dir):
        (temp_dir / "settings.yaml").write_text("watcher: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            Settings.load(temp_dir)

    def test_bad_value(self, temp_dir):
        (temp_dir / "settings.yaml").write_text("watcher:\n  max_workers: 0\n")

        with pytest.raises(ConfigurationError) as exc_info:
            Settings.load(temp_dir)

        assert exc_info.value.details["path"] == str(temp_dir / "settings.yaml")
