"""
Exception hierarchy for the agent loop.

Tool-level failures (bad arguments, provider faults, unknown tools) are
absorbed into the conversation as error results. Only ModelTransportError
ends a run, and the stream multiplexer turns it into an in-band error frame.
"""

from __future__ import annotations

from typing import Any

from deepsearch.models.error_models import ErrorCode


class DeepSearchError(Exception):
    """Base exception carrying an error code and optional details."""

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.message = message
        self.details = details
        self.cause = cause
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Structured error payload stored as a tool result."""
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}


class ToolArgumentError(DeepSearchError):
    """Tool arguments failed to decode or validate against the tool schema."""

    code = ErrorCode.TOOL_ARGUMENT_INVALID


class ToolExecutionError(DeepSearchError):
    """The tool's underlying provider failed (timeout, transport, non-2xx)."""

    code = ErrorCode.TOOL_EXECUTION_FAILED


class UnknownToolError(DeepSearchError):
    """The model asked for a tool that is not in the catalog."""

    code = ErrorCode.TOOL_UNKNOWN

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", details={"tool_name": tool_name})
        self.tool_name = tool_name


class ModelTransportError(DeepSearchError):
    """The model adapter itself failed; the run cannot continue."""

    code = ErrorCode.MODEL_TRANSPORT_ERROR


class InvalidToolStateError(DeepSearchError):
    """A tool invocation attempted a non-monotonic state transition."""

    code = ErrorCode.INTERNAL_STATE_ERROR


__all__ = [
    "DeepSearchError",
    "InvalidToolStateError",
    "ModelTransportError",
    "ToolArgumentError",
    "ToolExecutionError",
    "UnknownToolError",
]
