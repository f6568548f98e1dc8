"""
Configuration management for receiptflow.

Loads and validates configuration from a YAML file with environment variable
support. Values may reference ``${VAR:default}``; fields missing from the file
can also be supplied as ``RECEIPTFLOW_<SECTION>__<KEY>`` environment variables.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from receiptflow.core.exceptions import ConfigurationError

KNOWN_PROVIDERS = ("openai", "claude", "google")

# Values shipped in sample configuration files; never treated as real credentials
PLACEHOLDER_API_KEYS = frozenset({
    "openaiApiKey",
    "claudeApiKey",
    "googleAiApiKey",
    "changeme",
    "change-me",
    "your-api-key",
    "<api-key>",
})


def _resolve_env_vars(value: Any) -> Any:
    """Resolve environment variable references in configuration values.

    Supports format: ${VAR_NAME:default_value} or ${VAR_NAME}
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default)

        return re.sub(pattern, replacer, value)
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def load_yaml_config(path: Path) -> dict:
    """Load a YAML configuration file with environment variable resolution."""
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}

    return _resolve_env_vars(config)


# --- Settings Models ---

class ServerSettings(BaseModel):
    """Server configuration."""
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]


class StorageSettings(BaseModel):
    """Inbox and attachment storage locations."""
    inbox_path: str = "/data/inbox"
    storage_path: str = "/data/attachments"
    # Hard stop for {date}-{name}-{n} suffix probing
    max_collisions: int = Field(default=1000, ge=1)
    # Largest file accepted by POST /api/documents/upload
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)


class WatcherSettings(BaseModel):
    """Inbox polling configuration."""
    enabled: bool = True
    interval_seconds: float = Field(default=30.0, gt=0)
    max_workers: int = Field(default=4, ge=1, le=32)
    supported_extensions: list[str] = ["pdf", "jpg", "jpeg", "png", "gif", "bmp", "tiff", "tif"]
    process_pending_on_start: bool = True

    @field_validator("supported_extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in value if ext.strip()]


class ProviderSettings(BaseModel):
    """Credentials and endpoint for a single vision OCR provider."""
    api_key: str = ""
    model: str
    base_url: str
    # Sentinel value used for this provider in sample configuration
    placeholder: str = ""

    @property
    def has_credentials(self) -> bool:
        """True when the key is non-blank and not a sample placeholder."""
        key = self.api_key.strip()
        if not key:
            return False
        if key in PLACEHOLDER_API_KEYS:
            return False
        return key != self.placeholder


def _openai_defaults() -> ProviderSettings:
    return ProviderSettings(
        model="gpt-4o",
        base_url="https://api.openai.com/v1",
        placeholder="openaiApiKey",
    )


def _claude_defaults() -> ProviderSettings:
    return ProviderSettings(
        model="claude-3-haiku-20240307",
        base_url="https://api.anthropic.com/v1",
        placeholder="claudeApiKey",
    )


def _google_defaults() -> ProviderSettings:
    return ProviderSettings(
        model="gemini-1.5-flash",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        placeholder="googleAiApiKey",
    )


class OCRSettings(BaseModel):
    """Vision OCR provider configuration."""
    # Engines are consulted in this order; the first available one wins
    providers: list[str] = list(KNOWN_PROVIDERS)
    fallback_enabled: bool = False
    timeout_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=2, ge=1)
    # Upper bound on the raw provider body kept for audit
    raw_response_limit: int = Field(default=65536, ge=256)
    max_image_size: int = 1568
    jpeg_quality: int = Field(default=85, ge=1, le=100)
    max_tokens: int = 500
    temperature: float = 0.1
    openai: ProviderSettings = Field(default_factory=_openai_defaults)
    claude: ProviderSettings = Field(default_factory=_claude_defaults)
    google: ProviderSettings = Field(default_factory=_google_defaults)

    @field_validator("providers")
    @classmethod
    def validate_providers(cls, value: list[str]) -> list[str]:
        normalized = [name.strip().lower() for name in value]
        unknown = [name for name in normalized if name not in KNOWN_PROVIDERS]
        if unknown:
            raise ValueError(
                f"Unknown OCR provider(s): {unknown}. Known providers: {list(KNOWN_PROVIDERS)}"
            )
        return normalized

    def provider(self, name: str) -> ProviderSettings:
        """Get the settings block for a provider by name."""
        if name not in KNOWN_PROVIDERS:
            raise KeyError(name)
        return getattr(self, name)


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = "/data/receiptflow.db"
    wal_mode: bool = True


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="RECEIPTFLOW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    ocr: OCRSettings = Field(default_factory=OCRSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_dir: Path | None = None) -> "Settings":
        """Load settings from configuration file.

        Raises:
            ConfigurationError: If settings.yaml is not valid YAML or fails validation
        """
        if config_dir is None:
            config_dir = Path(os.environ.get("RECEIPTFLOW_CONFIG_DIR", "/app/config"))

        settings_path = config_dir / "settings.yaml"

        if settings_path.exists():
            try:
                config = load_yaml_config(settings_path)
                return cls(**config)
            except (yaml.YAMLError, ValidationError) as e:
                raise ConfigurationError(
                    f"Invalid configuration in {settings_path}: {e}",
                    {"path": str(settings_path)},
                ) from e

        return cls()


def configure_logging(settings: Settings) -> None:
    """Configure root logging from the logging section."""
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format=settings.logging.format,
    )


# --- Global Config Instance ---

_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_config(config_dir: Path | None = None) -> Settings:
    """Reload configuration from file."""
    global _settings
    _settings = Settings.load(config_dir)
    return _settings
