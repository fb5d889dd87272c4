"""Shared test fixtures for the DeepSearch test suite.

Settings and the rate limit gate are process-wide singletons, so they are
reset around every test.
"""

from __future__ import annotations

import os

from collections.abc import Generator

import pytest

os.environ.setdefault("APP_ENV", "test")

from deepsearch.api.middleware.rate_limiter import reset_rate_limit_gate  # noqa: E402
from deepsearch.core.cancellation import CancellationToken  # noqa: E402
from deepsearch.core.constants import clear_settings_cache  # noqa: E402
from deepsearch.tools.registry import ToolRegistry  # noqa: E402
from fakes import weather_tool  # noqa: E402


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    clear_settings_cache()
    reset_rate_limit_gate()
    yield
    clear_settings_cache()
    reset_rate_limit_gate()


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([weather_tool()])
