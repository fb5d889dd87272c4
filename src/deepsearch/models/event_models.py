"""
Event models for the agent loop.

Two event vocabularies live here:
- Model signals, yielded by a ModelAdapter for one generation step.
- Orchestration events, yielded by AgentOrchestrator.run and framed by the
  stream multiplexer.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

FinishReason = Literal["tool-calls", "stop", "length", "error"]
DoneReason = Literal["tool-calls", "stop", "length", "error", "step-budget-exceeded", "cancelled"]


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


# ============================================================================
# Model signals (ModelAdapter -> orchestrator)
# ============================================================================


class TextFragment(_Event):
    """A piece of generated assistant text."""

    kind: Literal["text"] = "text"
    text: str


class ToolCallFragment(_Event):
    """A fragment of a tool-call request.

    Partial fragments carry ``args_text_delta`` (raw argument text as it
    streams). The single complete fragment per call carries the decoded
    ``args``, or the raw string when it could not be decoded.
    """

    kind: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args_text_delta: str = ""
    args: Any = None
    complete: bool = False


class StepFinish(_Event):
    """End of one generation step."""

    kind: Literal["step-finish"] = "step-finish"
    finish_reason: FinishReason


ModelSignal = TextFragment | ToolCallFragment | StepFinish


# ============================================================================
# Orchestration events (orchestrator -> multiplexer)
# ============================================================================


class StepStarted(_Event):
    type: Literal["step-started"] = "step-started"
    step: int
    message_id: str


class TokenChunk(_Event):
    type: Literal["token-chunk"] = "token-chunk"
    step: int
    text: str


class ToolCallStarted(_Event):
    """First partial fragment of an invocation was seen (state partial-call)."""

    type: Literal["tool-call-started"] = "tool-call-started"
    tool_call_id: str
    tool_name: str


class ToolCallDelta(_Event):
    type: Literal["tool-call-delta"] = "tool-call-delta"
    tool_call_id: str
    args_text_delta: str


class ToolCall(_Event):
    """Arguments complete (state call)."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: Any = None


class ToolResult(_Event):
    """Invocation resolved (state result); errors are carried in ``result``."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    result: Any = None
    is_error: bool = False


class StepFinished(_Event):
    type: Literal["step-finished"] = "step-finished"
    step: int
    finish_reason: FinishReason
    is_continued: bool = False


class Done(_Event):
    """Terminal event of a run."""

    type: Literal["done"] = "done"
    finish_reason: DoneReason
    cancelled: bool = False


class ErrorEvent(_Event):
    """Terminal error surfaced in-band on an already-open stream."""

    type: Literal["error"] = "error"
    message: str


OrchestrationEvent = (
    StepStarted
    | TokenChunk
    | ToolCallStarted
    | ToolCallDelta
    | ToolCall
    | ToolResult
    | StepFinished
    | Done
    | ErrorEvent
)


__all__ = [
    "Done",
    "DoneReason",
    "ErrorEvent",
    "FinishReason",
    "ModelSignal",
    "OrchestrationEvent",
    "StepFinish",
    "StepFinished",
    "StepStarted",
    "TextFragment",
    "TokenChunk",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallFragment",
    "ToolCallStarted",
    "ToolResult",
]
