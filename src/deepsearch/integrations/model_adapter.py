"""
Model adapter: one generation step as a lazy sequence of signals.

The orchestrator only sees ``ModelAdapter.generate_step``. OpenAIModelAdapter
implements it on top of streamed Chat Completions, accumulating tool-call
argument fragments per index and emitting one complete fragment per call
once the stream ends.
"""

from __future__ import annotations

import json

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from openai import APIError, AsyncOpenAI

from deepsearch.core.exceptions import ModelTransportError
from deepsearch.core.prompts import SYSTEM_PROMPT
from deepsearch.models.chat_models import Message, ToolInvocationState
from deepsearch.models.event_models import FinishReason, ModelSignal, StepFinish, TextFragment, ToolCallFragment
from deepsearch.tools.registry import ToolSpec
from deepsearch.utils.logger import logger

# Provider finish reasons -> step finish reasons
FINISH_REASON_MAP: dict[str, FinishReason] = {
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "stop": "stop",
    "length": "length",
    "content_filter": "error",
}


class ModelAdapter(Protocol):
    """A language model capability, normalized for the agent loop."""

    def generate_step(self, conversation: Sequence[Message], catalog: Sequence[ToolSpec]) -> AsyncIterator[ModelSignal]:
        """Generate one step; the sequence ends with exactly one StepFinish."""
        ...


@dataclass
class _PendingToolCall:
    tool_call_id: str
    tool_name: str
    arguments: str = ""

    def decoded_args(self) -> Any:
        """Parsed arguments, or the raw text when it is not valid JSON."""
        if not self.arguments.strip():
            return {}
        try:
            return json.loads(self.arguments)
        except json.JSONDecodeError:
            return self.arguments


def to_openai_tools(catalog: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {"name": spec.name, "description": spec.description, "parameters": spec.parameters},
        }
        for spec in catalog
    ]


def to_openai_messages(
    conversation: Sequence[Message],
    system_prompt: str | None = SYSTEM_PROMPT,
) -> list[dict[str, Any]]:
    """Convert a conversation into Chat Completions messages.

    Only resolved invocations are replayed; their results come from ``tool``
    messages, or from the assistant part itself when the client sent the
    result inline (AI SDK history format).
    """
    answered = {
        invocation.tool_call_id
        for message in conversation
        if message.role == "tool"
        for invocation in message.tool_invocations
    }

    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for message in conversation:
        if message.role == "user":
            messages.append({"role": "user", "content": message.text})

        elif message.role == "assistant":
            resolved = [
                inv
                for inv in message.tool_invocations
                if inv.state is ToolInvocationState.RESULT or inv.tool_call_id in answered
            ]
            entry: dict[str, Any] = {"role": "assistant", "content": message.text or None}
            if resolved:
                entry["tool_calls"] = [
                    {
                        "id": inv.tool_call_id,
                        "type": "function",
                        "function": {
                            "name": inv.tool_name,
                            "arguments": inv.args if isinstance(inv.args, str) else json.dumps(inv.args or {}),
                        },
                    }
                    for inv in resolved
                ]
            elif not message.text:
                continue
            messages.append(entry)
            for inv in resolved:
                if inv.tool_call_id not in answered:
                    messages.append(_tool_message(inv.tool_call_id, inv.result))

        else:
            for inv in message.tool_invocations:
                messages.append(_tool_message(inv.tool_call_id, inv.result))

    return messages


def _tool_message(tool_call_id: str, result: Any) -> dict[str, Any]:
    content = result if isinstance(result, str) else json.dumps(result)
    return {"role": "tool", "tool_call_id": tool_call_id, "content": content}


class OpenAIModelAdapter:
    """Streams Chat Completions from an OpenAI-compatible endpoint."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        system_prompt: str | None = SYSTEM_PROMPT,
    ):
        self._client = client
        self._model = model
        self._system_prompt = system_prompt

    async def generate_step(
        self,
        conversation: Sequence[Message],
        catalog: Sequence[ToolSpec],
    ) -> AsyncIterator[ModelSignal]:
        request: dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(conversation, self._system_prompt),
            "stream": True,
        }
        if catalog:
            request["tools"] = to_openai_tools(catalog)

        pending: dict[int, _PendingToolCall] = {}
        finish_reason: FinishReason | None = None

        try:
            stream = await self._client.chat.completions.create(**request)
            async with stream:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta

                    if delta is not None and delta.content:
                        yield TextFragment(text=delta.content)

                    for tool_delta in (delta.tool_calls if delta is not None else None) or []:
                        call = pending.get(tool_delta.index)
                        function = tool_delta.function
                        if call is None:
                            call = _PendingToolCall(
                                tool_call_id=tool_delta.id or f"call_{tool_delta.index}",
                                tool_name=(function.name if function else None) or "",
                            )
                            pending[tool_delta.index] = call
                        elif function is not None and function.name and not call.tool_name:
                            call.tool_name = function.name

                        args_delta = (function.arguments if function else None) or ""
                        call.arguments += args_delta
                        yield ToolCallFragment(
                            tool_call_id=call.tool_call_id,
                            tool_name=call.tool_name,
                            args_text_delta=args_delta,
                        )

                    if choice.finish_reason:
                        finish_reason = FINISH_REASON_MAP.get(choice.finish_reason, "error")
        except APIError as e:
            logger.error(f"Model request failed: {e}")
            raise ModelTransportError(f"Model request failed: {e}", cause=e) from e

        for index in sorted(pending):
            call = pending[index]
            yield ToolCallFragment(
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                args=call.decoded_args(),
                complete=True,
            )

        if pending and finish_reason in (None, "stop"):
            # Some compatible providers report "stop" for tool-call turns
            finish_reason = "tool-calls"
        elif finish_reason is None:
            logger.warning("Model stream ended without a finish reason")
            finish_reason = "error"

        yield StepFinish(finish_reason=finish_reason)


__all__ = [
    "FINISH_REASON_MAP",
    "ModelAdapter",
    "OpenAIModelAdapter",
    "to_openai_messages",
    "to_openai_tools",
]
