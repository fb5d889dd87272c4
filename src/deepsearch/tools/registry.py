"""
Tool registry for the agent loop.

Tools are a closed set of named entries. The model selects one by name at
runtime; the registry resolves the name, validates the raw arguments against
the tool's pydantic parameter model and only then executes it. Every failure
short of cancellation is turned into an error result so the run can continue.
"""

from __future__ import annotations

import asyncio
import json
import time

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.exceptions import DeepSearchError, ToolArgumentError, ToolExecutionError, UnknownToolError
from deepsearch.utils.logger import logger
from deepsearch.utils.metrics import tool_call_duration_seconds, tool_calls_total

ToolExecutor = Callable[[Any, CancellationToken], Awaitable[Any]]


class ToolSpec(BaseModel):
    """Catalog entry shown to the model: name, description and JSON schema only."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class ToolDefinition:
    """A registered tool.

    ``execute`` receives the validated parameter model instance and the run's
    cancellation token, and returns a JSON-serializable result.
    """

    name: str
    description: str
    parameters: type[BaseModel]
    execute: ToolExecutor

    def to_spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.parameters.model_json_schema(),
        )


@dataclass(frozen=True)
class ToolExecutionResult:
    """Outcome of one invocation; errors carry an ``{"error": {...}}`` payload."""

    result: Any
    is_error: bool = False

    @classmethod
    def from_error(cls, error: DeepSearchError) -> ToolExecutionResult:
        return cls(result=error.to_payload(), is_error=True)


class ToolRegistry:
    """Name-keyed registry of tool definitions."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        """Add a tool.

        Raises:
            ValueError: A tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def catalog(self) -> list[ToolSpec]:
        """Tool declarations for the model (never the implementations)."""
        return [tool.to_spec() for tool in self._tools.values()]

    def validate(self, name: str, args: Any) -> BaseModel:
        """Resolve ``name`` and validate ``args`` against its parameter model.

        ``args`` may be a mapping, a JSON string (as streamed by the model) or
        None for a tool without parameters.

        Raises:
            UnknownToolError: No tool with that name
            ToolArgumentError: Arguments are not valid JSON or fail the schema
        """
        tool = self.get(name)

        if args is None:
            args = {}
        elif isinstance(args, str):
            try:
                args = json.loads(args) if args.strip() else {}
            except json.JSONDecodeError as e:
                raise ToolArgumentError(
                    f"Arguments for {name} are not valid JSON: {e.msg}",
                    details={"tool_name": name, "raw_args": args},
                    cause=e,
                ) from e

        try:
            return tool.parameters.model_validate(args)
        except ValidationError as e:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors(include_url=False)
            ]
            raise ToolArgumentError(
                f"Invalid arguments for {name}",
                details={"tool_name": name, "errors": errors},
                cause=e,
            ) from e

    async def invoke(
        self,
        name: str,
        params: BaseModel,
        token: CancellationToken,
        tool_call_id: str = "",
    ) -> ToolExecutionResult:
        """Execute an already-validated invocation.

        Cancellation propagates as ``asyncio.CancelledError``; every other
        failure becomes an error result.
        """
        tool = self.get(name)
        start = time.perf_counter()
        status = "success"
        try:
            result = await tool.execute(params, token)
            return ToolExecutionResult(result=result)
        except DeepSearchError as e:
            status = "error"
            logger.warning(f"Tool {name} failed: {e.message}", tool=name, code=e.code.value)
            return ToolExecutionResult.from_error(e)
        except Exception as e:
            status = "error"
            logger.error(f"Tool {name} raised unexpectedly: {e}", exc_info=True, tool=name)
            return ToolExecutionResult.from_error(ToolExecutionError(f"{name} failed: {e}", cause=e))
        except asyncio.CancelledError:
            status = "cancelled"
            raise
        finally:
            duration = time.perf_counter() - start
            tool_calls_total.labels(tool=name, status=status).inc()
            tool_call_duration_seconds.labels(tool=name).observe(duration)
            logger.log_tool_call(name, tool_call_id, status, duration * 1000)

    async def execute(self, name: str, args: Any, token: CancellationToken) -> ToolExecutionResult:
        """Validate then execute; unknown tools and bad arguments become error results."""
        try:
            params = self.validate(name, args)
        except (UnknownToolError, ToolArgumentError) as e:
            return ToolExecutionResult.from_error(e)
        return await self.invoke(name, params, token)


__all__ = [
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolExecutor",
    "ToolRegistry",
    "ToolSpec",
]
