"""
Conversation models for the chat agent.

Field names are snake_case in Python and camelCase on the wire so that
messages posted by AI SDK clients validate as-is.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator
from pydantic.alias_generators import to_camel

from deepsearch.core.exceptions import InvalidToolStateError


class WireModel(BaseModel):
    """Base for models exchanged with the client (camelCase aliases)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolInvocationState(str, Enum):
    """Lifecycle of a tool invocation; transitions only move forward."""

    PARTIAL_CALL = "partial-call"
    CALL = "call"
    RESULT = "result"


class ToolInvocationRecord(WireModel):
    """One tool invocation requested by the model.

    State machine: partial-call -> call -> result. A record may be created
    directly in ``call`` when the arguments arrive complete, but ``result``
    is only reachable from ``call``.
    """

    tool_call_id: str
    tool_name: str
    args: Any = None
    state: ToolInvocationState = ToolInvocationState.PARTIAL_CALL
    result: Any = None
    is_error: bool = False

    def mark_call(self, args: Any) -> None:
        """Arguments are complete: partial-call -> call."""
        if self.state is not ToolInvocationState.PARTIAL_CALL:
            raise InvalidToolStateError(
                f"Tool invocation {self.tool_call_id} cannot move from {self.state.value} to call",
                details={"tool_call_id": self.tool_call_id, "state": self.state.value},
            )
        self.args = args
        self.state = ToolInvocationState.CALL

    def mark_result(self, result: Any, is_error: bool = False) -> None:
        """Tool resolved: call -> result."""
        if self.state is not ToolInvocationState.CALL:
            raise InvalidToolStateError(
                f"Tool invocation {self.tool_call_id} cannot move from {self.state.value} to result",
                details={"tool_call_id": self.tool_call_id, "state": self.state.value},
            )
        self.result = result
        self.is_error = is_error
        self.state = ToolInvocationState.RESULT


class TextPart(WireModel):
    type: Literal["text"] = "text"
    text: str


class ToolInvocationPart(WireModel):
    type: Literal["tool-invocation"] = "tool-invocation"
    tool_invocation: ToolInvocationRecord


class PassthroughPart(WireModel):
    """A client part the agent does not interpret (step-start, reasoning, source, file, ...).

    AI SDK clients post assistant messages back with every part they built
    from the stream. These parts are kept as-is and never reach the model.
    """

    model_config = ConfigDict(extra="allow")

    type: str


def _part_tag(value: Any) -> str:
    part_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return part_type if part_type in ("text", "tool-invocation") else "passthrough"


MessagePart = Annotated[
    Annotated[TextPart, Tag("text")]
    | Annotated[ToolInvocationPart, Tag("tool-invocation")]
    | Annotated[PassthroughPart, Tag("passthrough")],
    Discriminator(_part_tag),
]


class Message(WireModel):
    """A conversation message; parts keep generation order."""

    role: Literal["user", "assistant", "tool"]
    parts: list[MessagePart] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def content_to_parts(cls, data: Any) -> Any:
        """Accept the plain ``content`` string older clients send instead of parts."""
        if isinstance(data, dict) and not data.get("parts") and isinstance(data.get("content"), str):
            data = {**data, "parts": [{"type": "text", "text": data["content"]}]}
        return data

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", parts=[TextPart(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def tool_invocations(self) -> list[ToolInvocationRecord]:
        return [part.tool_invocation for part in self.parts if isinstance(part, ToolInvocationPart)]


#: A conversation is an ordered, append-only list of messages owned by one run
Conversation = list[Message]


__all__ = [
    "Conversation",
    "Message",
    "MessagePart",
    "PassthroughPart",
    "TextPart",
    "ToolInvocationPart",
    "ToolInvocationRecord",
    "ToolInvocationState",
    "WireModel",
]
