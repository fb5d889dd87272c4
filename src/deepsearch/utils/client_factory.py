"""
Client factory utilities.
Centralizes httpx and AsyncOpenAI client creation with consistent configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI

# Streaming completions can pause between chunks while the model works,
# so reads get a generous default
DEFAULT_CONNECT_TIMEOUT = 30.0  # Time to establish connection
DEFAULT_READ_TIMEOUT = 120.0
DEFAULT_WRITE_TIMEOUT = 30.0  # Time to send request
DEFAULT_POOL_TIMEOUT = 30.0  # Time to acquire connection from pool


def create_http_client(read_timeout: float | None = None) -> httpx.AsyncClient:
    """Create HTTP client with proper timeouts for streaming.

    Args:
        read_timeout: Read timeout in seconds (default: 120s)

    Returns:
        Configured httpx.AsyncClient
    """
    effective_read_timeout = read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=effective_read_timeout,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )
    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str | None,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create AsyncOpenAI client with consistent configuration.

    Args:
        api_key: OpenAI (or compatible provider) API key
        base_url: Optional base URL for OpenAI-compatible endpoints
        http_client: Optional shared httpx client

    Returns:
        Configured AsyncOpenAI client
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)
