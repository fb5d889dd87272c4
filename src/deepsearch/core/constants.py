"""
Constants and configuration for DeepSearch.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# ============================================================================
# Agent Loop
# ============================================================================

#: Maximum model invocations per run (circuit breaker for tool-call loops)
MAX_STEPS = 10

#: Seconds to wait for in-flight tools to observe cancellation before giving up on them
TOOL_CANCEL_GRACE_SECONDS = 5.0

# ============================================================================
# Finish Reasons
# ============================================================================

FINISH_REASON_TOOL_CALLS = "tool-calls"
FINISH_REASON_STOP = "stop"
FINISH_REASON_LENGTH = "length"
FINISH_REASON_ERROR = "error"
FINISH_REASON_STEP_BUDGET = "step-budget-exceeded"
FINISH_REASON_CANCELLED = "cancelled"

# ============================================================================
# Data Stream Protocol (AI SDK wire format)
# ============================================================================

#: Response header announcing the data stream protocol version
DATA_STREAM_HEADER = "X-Vercel-AI-Data-Stream"
DATA_STREAM_VERSION = "v1"

#: Frame type codes - one per event kind, "<code>:<json>\n" on the wire
FRAME_TEXT = "0"
FRAME_ERROR = "3"
FRAME_TOOL_CALL = "9"
FRAME_TOOL_RESULT = "a"
FRAME_TOOL_CALL_STREAMING_START = "b"
FRAME_TOOL_CALL_DELTA = "c"
FRAME_FINISH_MESSAGE = "d"
FRAME_FINISH_STEP = "e"
FRAME_START_STEP = "f"

# ============================================================================
# Search
# ============================================================================

SERPER_DEFAULT_URL = "https://google.serper.dev/search"
SEARCH_RESULT_COUNT = 10

# ============================================================================
# Logging
# ============================================================================

LOG_MAX_SIZE = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT_ERRORS = 2
LOG_PREVIEW_LENGTH = 80

# ============================================================================
# Environment Configuration with Pydantic Validation
# ============================================================================

#: Valid environment names for configuration loading
Environment = Literal["development", "production", "test"]


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env_name}",
        PROJECT_ROOT / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)

    Validates at startup to fail fast on configuration errors.
    """

    # Environment identification
    app_env: Environment = Field(default="development", description="Application environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    # Language model
    openai_api_key: str | None = Field(default=None, description="OpenAI API key for authentication")
    openai_base_url: str | None = Field(default=None, description="Optional OpenAI-compatible endpoint URL")
    model_name: str = Field(default="gpt-4.1-mini", description="Chat model used for the agent loop")
    http_read_timeout: float = Field(default=120.0, description="HTTP read timeout for model streaming (seconds)")

    # Web search (Serper)
    serper_api_key: str | None = Field(default=None, description="Serper API key for web search")
    serper_base_url: str = Field(default=SERPER_DEFAULT_URL, description="Serper search endpoint")
    search_result_count: int = Field(default=SEARCH_RESULT_COUNT, ge=1, le=100, description="Results per search")
    search_timeout: float = Field(default=15.0, gt=0, description="Search request timeout (seconds)")

    # Agent loop
    max_steps: int = Field(default=MAX_STEPS, ge=1, le=50, description="Maximum model invocations per run")
    stream_error_message: str = Field(
        default="Oops, an error occurred!",
        description="Human-readable message sent when a run fails mid-stream",
    )

    # Admission gate
    rate_limit_enabled: bool = Field(default=True, description="Enforce the per-user request quota")
    rate_limit_requests_per_window: int = Field(default=50, ge=1, description="Requests allowed per window")
    rate_limit_window_seconds: int = Field(default=86400, ge=1, description="Quota window length (seconds)")
    rate_limit_exempt_users: str = Field(
        default="",
        description="Comma-separated user ids that bypass the quota (administrators)",
    )

    # Auth
    allow_localhost_noauth: bool = Field(
        default=True,
        description="Allow auth bypass on localhost during local development",
    )
    default_user_id: str = Field(default="local-user", description="Identity used for localhost requests")
    jwt_secret: str = Field(default="change-me-in-prod", description="JWT signing secret")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    # API server
    api_host: str = Field(default="0.0.0.0", description="FastAPI host")
    api_port: int = Field(default=8000, description="FastAPI port")
    app_version: str = Field(default="1.0.0", description="Application version")
    cors_allow_origins: str = Field(default="*", description="Comma-separated list of allowed CORS origins")

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Env vars override dotenv files; constructor values override both."""
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | None) -> str:
        """Validate and normalize APP_ENV value."""
        if v is None:
            return "development"
        normalized = str(v).lower()
        if normalized not in ("development", "production", "test"):
            raise ValueError(f"app_env must be 'development', 'production', or 'test', got '{v}'")
        return normalized

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Validate JWT secret meets minimum security requirements."""
        if not v or len(v) < 8:
            raise ValueError("jwt_secret must be at least 8 characters")
        return v

    @model_validator(mode="after")
    def validate_production(self) -> Settings:
        """Reject insecure defaults when running in production."""
        if self.app_env == "production":
            if self.jwt_secret == "change-me-in-prod":
                raise ValueError(
                    "Configuration Error: jwt_secret must be changed from default in production.\n"
                    "Set JWT_SECRET to a secure random string in your .env.production file."
                )
            if self.allow_localhost_noauth:
                raise ValueError(
                    "Configuration Error: allow_localhost_noauth must be False in production.\n"
                    "Set ALLOW_LOCALHOST_NOAUTH=false in your .env.production file."
                )
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @property
    def rate_limit_exempt_list(self) -> list[str]:
        """Parse quota-exempt user ids into a list."""
        return [user.strip() for user in self.rate_limit_exempt_users.split(",") if user.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


# ============================================================================
# Settings Management (Thread-safe)
# ============================================================================


class _SettingsManager:
    """Thread-safe settings manager.

    Uses a class to avoid global statement warnings from linters.
    """

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        if self._instance is not None:
            return self._instance

        with self._lock:
            # Double-check after acquiring lock
            if self._instance is None:
                self._instance = Settings()
            return self._instance

    def reload(self) -> Settings:
        with self._lock:
            self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        with self._lock:
            self._instance = None


# Module-level singleton manager
_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get the cached settings instance.

    This is the primary entry point for accessing application settings.
    Settings are validated on first access and cached.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    return _settings_manager.get()


def reload_settings() -> Settings:
    """Force reload settings from environment and dotenv files."""
    return _settings_manager.reload()


def clear_settings_cache() -> None:
    """Clear cached settings instance (used by tests)."""
    _settings_manager.clear()
