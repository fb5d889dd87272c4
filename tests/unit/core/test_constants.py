"""Tests for constants module.

Tests settings loading, validation and the protocol constants.
"""

from __future__ import annotations

import pytest

from pydantic import ValidationError

from deepsearch.core.constants import (
    DATA_STREAM_HEADER,
    DATA_STREAM_VERSION,
    MAX_STEPS,
    Settings,
    clear_settings_cache,
    get_settings,
    reload_settings,
)


class TestConstants:
    """Tests for module constants."""

    def test_step_budget(self) -> None:
        """The default step budget is ten model invocations."""
        assert MAX_STEPS == 10

    def test_data_stream_header(self) -> None:
        assert DATA_STREAM_HEADER == "X-Vercel-AI-Data-Stream"
        assert DATA_STREAM_VERSION == "v1"


class TestSettings:
    """Tests for the Settings model."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.max_steps == MAX_STEPS
        assert settings.rate_limit_requests_per_window == 50
        assert settings.rate_limit_window_seconds == 86400
        assert settings.stream_error_message == "Oops, an error occurred!"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables override defaults."""
        monkeypatch.setenv("MAX_STEPS", "4")
        monkeypatch.setenv("MODEL_NAME", "gpt-4o")

        settings = Settings()

        assert settings.max_steps == 4
        assert settings.model_name == "gpt-4o"

    def test_comma_separated_lists(self) -> None:
        settings = Settings(cors_allow_origins="http://a.test, http://b.test", rate_limit_exempt_users="admin,,ops ")

        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]
        assert settings.rate_limit_exempt_list == ["admin", "ops"]

    def test_invalid_app_env(self) -> None:
        with pytest.raises(ValidationError):
            Settings(app_env="staging")

    def test_short_jwt_secret_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(jwt_secret="short")

    def test_production_rejects_default_secret(self) -> None:
        """Production refuses the default JWT secret."""
        with pytest.raises(ValidationError, match="jwt_secret"):
            Settings(app_env="production", allow_localhost_noauth=False)

    def test_production_rejects_localhost_bypass(self) -> None:
        with pytest.raises(ValidationError, match="allow_localhost_noauth"):
            Settings(app_env="production", jwt_secret="a-long-production-secret", allow_localhost_noauth=True)

    def test_max_steps_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(max_steps=0)


class TestGetSettings:
    """Tests for the settings singleton."""

    def test_caching(self) -> None:
        """Test that settings are cached."""
        assert get_settings() is get_settings()

    def test_clear_cache(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_settings()
        monkeypatch.setenv("MAX_STEPS", "3")

        clear_settings_cache()
        second = get_settings()

        assert second is not first
        assert second.max_steps == 3

    def test_reload(self, monkeypatch: pytest.MonkeyPatch) -> None:
        get_settings()
        monkeypatch.setenv("SEARCH_RESULT_COUNT", "5")

        assert reload_settings().search_result_count == 5
        assert get_settings().search_result_count == 5
