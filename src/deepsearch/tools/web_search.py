"""
searchWeb tool: web search through the Serper client.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.constants import SEARCH_RESULT_COUNT
from deepsearch.integrations.serper_client import SerperClient
from deepsearch.tools.registry import ToolDefinition

SEARCH_WEB_TOOL_NAME = "searchWeb"


class SearchWebArgs(BaseModel):
    query: str = Field(..., min_length=1, description="The query to search the web for")


def create_search_web_tool(client: SerperClient, num_results: int = SEARCH_RESULT_COUNT) -> ToolDefinition:
    """Build the searchWeb tool bound to a Serper client.

    Returns ranked ``[{title, link, snippet}]`` results.
    """

    async def search_web(args: SearchWebArgs, token: CancellationToken) -> list[dict[str, Any]]:
        results = await client.search(args.query, num=num_results, token=token)
        return [result.model_dump() for result in results]

    return ToolDefinition(
        name=SEARCH_WEB_TOOL_NAME,
        description="Search the web for up-to-date information. Returns a ranked list of {title, link, snippet}.",
        parameters=SearchWebArgs,
        execute=search_web,
    )


__all__ = ["SEARCH_WEB_TOOL_NAME", "SearchWebArgs", "create_search_web_tool"]
