"""
Streaming multiplexer: orchestration events -> AI SDK data stream frames.

Each event becomes one ``<code>:<json>\\n`` frame, in emission order. The
stream always ends with a finish frame (``d:``) or a single error frame
(``3:``). Frames are produced lazily, so a slow consumer holds back the
orchestrator instead of causing buffering or drops.
"""

from __future__ import annotations

import json

from collections.abc import AsyncIterator
from typing import Any

from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.constants import (
    FRAME_ERROR,
    FRAME_FINISH_MESSAGE,
    FRAME_FINISH_STEP,
    FRAME_START_STEP,
    FRAME_TEXT,
    FRAME_TOOL_CALL,
    FRAME_TOOL_CALL_DELTA,
    FRAME_TOOL_CALL_STREAMING_START,
    FRAME_TOOL_RESULT,
)
from deepsearch.models.event_models import (
    Done,
    ErrorEvent,
    OrchestrationEvent,
    StepFinished,
    StepStarted,
    TokenChunk,
    ToolCall,
    ToolCallDelta,
    ToolCallStarted,
    ToolResult,
)
from deepsearch.utils.logger import logger

DEFAULT_ERROR_MESSAGE = "Oops, an error occurred!"


def format_frame(code: str, payload: Any) -> str:
    """Serialize one frame: compact JSON, non-ASCII kept as-is."""
    return f"{code}:{json.dumps(payload, separators=(',', ':'), ensure_ascii=False, default=str)}\n"


def encode_event(event: OrchestrationEvent) -> str:
    """Frame a single orchestration event."""
    if isinstance(event, TokenChunk):
        return format_frame(FRAME_TEXT, event.text)
    if isinstance(event, StepStarted):
        return format_frame(FRAME_START_STEP, {"messageId": event.message_id})
    if isinstance(event, ToolCallStarted):
        return format_frame(
            FRAME_TOOL_CALL_STREAMING_START,
            {"toolCallId": event.tool_call_id, "toolName": event.tool_name},
        )
    if isinstance(event, ToolCallDelta):
        return format_frame(
            FRAME_TOOL_CALL_DELTA,
            {"toolCallId": event.tool_call_id, "argsTextDelta": event.args_text_delta},
        )
    if isinstance(event, ToolCall):
        return format_frame(
            FRAME_TOOL_CALL,
            {"toolCallId": event.tool_call_id, "toolName": event.tool_name, "args": event.args},
        )
    if isinstance(event, ToolResult):
        return format_frame(FRAME_TOOL_RESULT, {"toolCallId": event.tool_call_id, "result": event.result})
    if isinstance(event, StepFinished):
        return format_frame(
            FRAME_FINISH_STEP,
            {"finishReason": event.finish_reason, "isContinued": event.is_continued},
        )
    if isinstance(event, Done):
        payload: dict[str, Any] = {"finishReason": event.finish_reason}
        if event.cancelled:
            payload["cancelled"] = True
        return format_frame(FRAME_FINISH_MESSAGE, payload)
    if isinstance(event, ErrorEvent):
        return format_frame(FRAME_ERROR, event.message)
    raise TypeError(f"Unsupported orchestration event: {type(event).__name__}")


class StreamMultiplexer:
    """Serializes one run's events onto a single output channel."""

    def __init__(self, error_message: str = DEFAULT_ERROR_MESSAGE):
        self._error_message = error_message

    async def stream(
        self,
        events: AsyncIterator[OrchestrationEvent],
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        """Yield frames for ``events``.

        Any exception from the event source ends the stream with one error
        frame. If the consumer stops early, ``token`` is cancelled and the
        event source is closed so in-flight tools observe cancellation.
        """
        terminated = False
        try:
            try:
                async for event in events:
                    frame = encode_event(event)
                    if isinstance(event, Done | ErrorEvent):
                        terminated = True
                    yield frame
                    if terminated:
                        return
            except Exception as e:
                logger.error(f"Chat stream failed: {type(e).__name__}: {e}", exc_info=True)
                terminated = True
                yield format_frame(FRAME_ERROR, self._error_message)
                return

            logger.error("Event source ended without a terminal event")
            terminated = True
            yield format_frame(FRAME_ERROR, self._error_message)
        finally:
            if not terminated:
                logger.info("Client stopped consuming the stream; cancelling run")
                token.cancel("client disconnected")
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()


__all__ = ["DEFAULT_ERROR_MESSAGE", "StreamMultiplexer", "encode_event", "format_frame"]
