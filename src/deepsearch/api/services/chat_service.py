"""
Chat service: wires one request's conversation through the agent loop.

Builds a fresh AgentOrchestrator and CancellationToken per request and
returns the multiplexed frame stream. Admission (auth, quota) happens in the
route before this service is called.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from deepsearch.api.services.stream_multiplexer import DEFAULT_ERROR_MESSAGE, StreamMultiplexer
from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.constants import MAX_STEPS, SEARCH_RESULT_COUNT
from deepsearch.core.orchestrator import AgentOrchestrator
from deepsearch.integrations.model_adapter import ModelAdapter
from deepsearch.integrations.serper_client import SerperClient
from deepsearch.models.chat_models import Message
from deepsearch.tools.registry import ToolRegistry
from deepsearch.tools.web_search import create_search_web_tool
from deepsearch.utils.logger import logger


def build_tool_registry(search_client: SerperClient, num_results: int = SEARCH_RESULT_COUNT) -> ToolRegistry:
    """Tool catalog exposed to the model for every run."""
    return ToolRegistry([create_search_web_tool(search_client, num_results=num_results)])


class ChatService:
    """Creates and streams single-use agent runs."""

    def __init__(
        self,
        model: ModelAdapter,
        registry: ToolRegistry,
        max_steps: int = MAX_STEPS,
        error_message: str = DEFAULT_ERROR_MESSAGE,
    ):
        self.model = model
        self.registry = registry
        self.max_steps = max_steps
        self.error_message = error_message

    def create_orchestrator(self) -> AgentOrchestrator:
        return AgentOrchestrator(self.model, self.registry, max_steps=self.max_steps)

    def stream_chat(self, messages: Sequence[Message], user_id: str | None = None) -> AsyncIterator[str]:
        """Start a run over a copy of ``messages`` and return its frame stream."""
        token = CancellationToken()
        orchestrator = self.create_orchestrator()
        multiplexer = StreamMultiplexer(self.error_message)

        logger.info(
            f"Chat run started: {len(messages)} messages, tools={self.registry.names}",
            user_id=user_id,
        )
        return multiplexer.stream(orchestrator.run(list(messages), token), token)


__all__ = ["ChatService", "build_tool_registry"]
