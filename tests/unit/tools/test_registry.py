"""Tests for tool registration, argument validation and execution."""

import asyncio

import pytest

from pydantic import BaseModel

from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.exceptions import ToolArgumentError, ToolExecutionError, UnknownToolError
from deepsearch.models.error_models import ErrorCode
from deepsearch.tools.registry import ToolDefinition, ToolRegistry
from fakes import GetWeatherArgs, weather_tool


class NoArgs(BaseModel):
    pass


class TestRegistration:
    def test_register_and_lookup(self, registry: ToolRegistry) -> None:
        assert "getWeather" in registry
        assert len(registry) == 1
        assert registry.names == ["getWeather"]
        assert registry.get("getWeather").parameters is GetWeatherArgs

    def test_duplicate_name_rejected(self, registry: ToolRegistry) -> None:
        with pytest.raises(ValueError, match="already registered"):
            registry.register(weather_tool())

    def test_unknown_tool(self, registry: ToolRegistry) -> None:
        with pytest.raises(UnknownToolError) as exc_info:
            registry.get("getStockPrice")
        assert exc_info.value.tool_name == "getStockPrice"

    def test_catalog_exposes_schema_only(self, registry: ToolRegistry) -> None:
        (spec,) = registry.catalog()

        assert spec.name == "getWeather"
        assert spec.parameters["required"] == ["city"]
        assert not hasattr(spec, "execute")


class TestValidate:
    def test_mapping(self, registry: ToolRegistry) -> None:
        params = registry.validate("getWeather", {"city": "London"})
        assert params == GetWeatherArgs(city="London")

    def test_json_string(self, registry: ToolRegistry) -> None:
        params = registry.validate("getWeather", '{"city": "Berlin"}')
        assert params.city == "Berlin"

    def test_malformed_json(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolArgumentError) as exc_info:
            registry.validate("getWeather", '{"city": ')
        assert exc_info.value.details["raw_args"] == '{"city": '

    def test_schema_violation(self, registry: ToolRegistry) -> None:
        with pytest.raises(ToolArgumentError) as exc_info:
            registry.validate("getWeather", {"city": 42})
        assert exc_info.value.code is ErrorCode.TOOL_ARGUMENT_INVALID
        assert exc_info.value.details["errors"][0]["loc"] == "city"

    def test_none_means_no_arguments(self) -> None:
        async def noop(args: NoArgs, token: CancellationToken) -> str:
            return "ok"

        registry = ToolRegistry([ToolDefinition(name="noop", description="No-op", parameters=NoArgs, execute=noop)])
        assert registry.validate("noop", None) == NoArgs()
        assert registry.validate("noop", "") == NoArgs()


class TestExecute:
    @pytest.mark.asyncio
    async def test_success(self, registry: ToolRegistry, token: CancellationToken) -> None:
        outcome = await registry.execute("getWeather", {"city": "Rome"}, token)

        assert outcome.is_error is False
        assert outcome.result == "The weather in Rome is 25°C and sunny."

    @pytest.mark.asyncio
    async def test_unknown_tool_is_error_result(self, registry: ToolRegistry, token: CancellationToken) -> None:
        outcome = await registry.execute("nope", {}, token)

        assert outcome.is_error is True
        assert outcome.result["error"]["code"] == ErrorCode.TOOL_UNKNOWN.value

    @pytest.mark.asyncio
    async def test_invalid_args_are_error_result(self, registry: ToolRegistry, token: CancellationToken) -> None:
        outcome = await registry.execute("getWeather", {}, token)

        assert outcome.is_error is True
        assert outcome.result["error"]["code"] == ErrorCode.TOOL_ARGUMENT_INVALID.value

    @pytest.mark.asyncio
    async def test_domain_error_keeps_code(self, token: CancellationToken) -> None:
        async def failing(args: NoArgs, token: CancellationToken) -> str:
            raise ToolExecutionError("provider down", code=ErrorCode.SEARCH_PROVIDER_ERROR)

        registry = ToolRegistry([ToolDefinition(name="fail", description="Fails", parameters=NoArgs, execute=failing)])
        outcome = await registry.execute("fail", {}, token)

        assert outcome.is_error is True
        assert outcome.result == {"error": {"code": "TOOL_4010", "message": "provider down"}}

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self, token: CancellationToken) -> None:
        async def failing(args: NoArgs, token: CancellationToken) -> str:
            raise KeyError("missing")

        registry = ToolRegistry([ToolDefinition(name="fail", description="Fails", parameters=NoArgs, execute=failing)])
        outcome = await registry.execute("fail", {}, token)

        assert outcome.is_error is True
        assert outcome.result["error"]["code"] == ErrorCode.TOOL_EXECUTION_FAILED.value

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, token: CancellationToken) -> None:
        async def cancelled(args: NoArgs, token: CancellationToken) -> str:
            raise asyncio.CancelledError()

        registry = ToolRegistry(
            [ToolDefinition(name="cancelled", description="Cancelled", parameters=NoArgs, execute=cancelled)]
        )

        with pytest.raises(asyncio.CancelledError):
            await registry.execute("cancelled", {}, token)

    @pytest.mark.asyncio
    async def test_token_is_passed_to_tool(self, token: CancellationToken) -> None:
        seen: list[CancellationToken] = []

        async def capture(args: NoArgs, token: CancellationToken) -> None:
            seen.append(token)

        registry = ToolRegistry(
            [ToolDefinition(name="capture", description="Capture", parameters=NoArgs, execute=capture)]
        )
        await registry.execute("capture", {}, token)

        assert seen == [token]
