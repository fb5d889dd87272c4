"""
Serper web search client.

Wraps the Serper Google Search API behind a cancellable ``search`` call that
returns normalized ``{title, link, snippet}`` results. Every provider failure
(timeout, transport error, non-2xx, malformed body) is raised as a
ToolExecutionError so the tool layer can record it as an error result.
"""

from __future__ import annotations

from typing import Any

import httpx

from pydantic import BaseModel, ValidationError

from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.constants import SEARCH_RESULT_COUNT, SERPER_DEFAULT_URL
from deepsearch.core.exceptions import ToolExecutionError
from deepsearch.models.error_models import ErrorCode
from deepsearch.utils.logger import logger, preview


class SearchResult(BaseModel):
    """One organic search hit."""

    title: str = ""
    link: str
    snippet: str = ""


class SerperClient:
    """Async client for the Serper search endpoint.

    The httpx client is injected and owned by the caller (the app lifespan),
    so tests can pass one built on ``httpx.MockTransport``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str | None,
        base_url: str = SERPER_DEFAULT_URL,
        timeout: float = 15.0,
    ):
        self._http = http_client
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def search(
        self,
        query: str,
        num: int = SEARCH_RESULT_COUNT,
        token: CancellationToken | None = None,
    ) -> list[SearchResult]:
        """Run a web search.

        Args:
            query: Search query text
            num: Number of results to request
            token: Run cancellation token; a pending request is aborted when it fires

        Returns:
            Organic results in provider ranking order

        Raises:
            ToolExecutionError: Provider failure of any kind
            asyncio.CancelledError: Token fired while the request was pending
        """
        if not self._api_key:
            raise ToolExecutionError(
                "Web search is not configured (SERPER_API_KEY missing)",
                code=ErrorCode.SEARCH_PROVIDER_ERROR,
            )

        logger.debug(f"Serper search: {preview(query)}", num=num)

        request = self._http.post(
            self._base_url,
            json={"q": query, "num": num},
            headers={"X-API-KEY": self._api_key, "Content-Type": "application/json"},
            timeout=self._timeout,
        )

        try:
            response = await (token.run_until_cancelled(request) if token else request)
        except httpx.TimeoutException as e:
            raise ToolExecutionError(
                f"Search request timed out after {self._timeout:g}s",
                code=ErrorCode.SEARCH_PROVIDER_ERROR,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise ToolExecutionError(
                f"Search request failed: {e}",
                code=ErrorCode.SEARCH_PROVIDER_ERROR,
                cause=e,
            ) from e

        if response.is_error:
            raise ToolExecutionError(
                f"Search provider returned HTTP {response.status_code}",
                code=ErrorCode.SEARCH_PROVIDER_ERROR,
                details={"status_code": response.status_code},
            )

        return self._parse_results(response)

    def _parse_results(self, response: httpx.Response) -> list[SearchResult]:
        try:
            body: Any = response.json()
        except ValueError as e:
            raise ToolExecutionError(
                "Search provider returned a non-JSON body",
                code=ErrorCode.SEARCH_PROVIDER_ERROR,
                cause=e,
            ) from e

        organic = body.get("organic", []) if isinstance(body, dict) else []
        try:
            return [SearchResult.model_validate(item) for item in organic]
        except ValidationError as e:
            raise ToolExecutionError(
                "Search provider returned malformed results",
                code=ErrorCode.SEARCH_PROVIDER_ERROR,
                cause=e,
            ) from e


__all__ = ["SearchResult", "SerperClient"]
