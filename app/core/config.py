"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Static type checkers treat required fields as required constructor
    arguments, which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_storage_settings() -> "StorageSettings":
    return StorageSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "openai",
        description="LLM provider name (currently: openai)",
    )
    model: str = Field(
        "gpt-4o-mini",
        description="Model name (e.g., gpt-4o, gpt-4o-mini)",
    )
    api_key: str | None = Field(
        None,
        description="API key for the provider",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint (OpenAI-compatible gateways)",
    )
    timeout_seconds: float = Field(
        15.0,
        description="Per-attempt request timeout in seconds",
        gt=0,
    )
    max_attempts: int = Field(
        3,
        description="Maximum attempts for transient failures (timeout/unavailable)",
        ge=1,
    )
    retry_backoff_seconds: float = Field(
        0.5,
        description="Base delay between attempts; grows linearly per attempt",
        ge=0,
    )
    temperature: float = Field(
        0.3,
        description="Sampling temperature for optimization requests",
        ge=0,
        le=2,
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    max_prompt_chars: int = Field(
        2000,
        description="Maximum prompt length in characters",
        ge=1,
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description=(
            "Comma-separated list of valid API keys. Each entry is either 'key' "
            "or 'key:identity' to bind the key to a user identity"
        ),
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable the per-identity cooldown gate",
    )
    rate_limit_cooldown_seconds: float = Field(
        30.0,
        description="Minimum seconds between two accepted submissions per identity",
        gt=0,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include Retry-After header when throttling",
    )

    retention_cap: int = Field(
        50,
        description="Maximum number of stored submissions per identity",
        ge=1,
    )
    history_page_size: int = Field(
        20,
        description="Default number of history items returned per page",
        ge=1,
        le=100,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class StorageSettings(BaseSettings):
    """Submission storage configuration."""

    backend: str = Field(
        "memory",
        description="Storage backend: 'memory' or 'sql'",
    )
    database_url: str = Field(
        "sqlite:///./prompt_optimizer.db",
        description="SQLAlchemy database URL for the 'sql' backend",
    )
    echo: bool = Field(
        False,
        description="Echo SQL statements (debugging only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    storage: StorageSettings = Field(default_factory=_build_storage_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
