"""Tests for AI SDK data stream framing."""

from __future__ import annotations

import asyncio

from collections.abc import AsyncIterator

import pytest

from pydantic import BaseModel

from deepsearch.api.services.chat_service import ChatService
from deepsearch.api.services.stream_multiplexer import StreamMultiplexer, encode_event, format_frame
from deepsearch.core.cancellation import CancellationToken
from deepsearch.core.exceptions import ModelTransportError
from deepsearch.models.chat_models import Message
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
from deepsearch.tools.registry import ToolDefinition, ToolRegistry
from fakes import ScriptedModelAdapter, finish, text, tool_call


async def source(*events: OrchestrationEvent, error: Exception | None = None) -> AsyncIterator[OrchestrationEvent]:
    for event in events:
        yield event
    if error is not None:
        raise error


async def collect(frames: AsyncIterator[str]) -> list[str]:
    return [frame async for frame in frames]


class TestEncodeEvent:
    @pytest.mark.parametrize(
        ("event", "frame"),
        [
            (StepStarted(step=1, message_id="msg-1"), 'f:{"messageId":"msg-1"}\n'),
            (TokenChunk(step=1, text="Hello"), '0:"Hello"\n'),
            (
                ToolCallStarted(tool_call_id="call-1", tool_name="searchWeb"),
                'b:{"toolCallId":"call-1","toolName":"searchWeb"}\n',
            ),
            (
                ToolCallDelta(tool_call_id="call-1", args_text_delta='{"query":'),
                'c:{"toolCallId":"call-1","argsTextDelta":"{\\"query\\":"}\n',
            ),
            (
                ToolCall(tool_call_id="call-1", tool_name="getWeather", args={"city": "London"}),
                '9:{"toolCallId":"call-1","toolName":"getWeather","args":{"city":"London"}}\n',
            ),
            (
                ToolResult(tool_call_id="call-1", tool_name="getWeather", result="sunny"),
                'a:{"toolCallId":"call-1","result":"sunny"}\n',
            ),
            (StepFinished(step=1, finish_reason="tool-calls"), 'e:{"finishReason":"tool-calls","isContinued":false}\n'),
            (Done(finish_reason="stop"), 'd:{"finishReason":"stop"}\n'),
            (
                Done(finish_reason="cancelled", cancelled=True),
                'd:{"finishReason":"cancelled","cancelled":true}\n',
            ),
            (ErrorEvent(message="boom"), '3:"boom"\n'),
        ],
    )
    def test_frames(self, event: OrchestrationEvent, frame: str) -> None:
        assert encode_event(event) == frame

    def test_non_ascii_kept(self) -> None:
        assert format_frame("0", "25°C") == '0:"25°C"\n'

    def test_unsupported_event(self) -> None:
        with pytest.raises(TypeError):
            encode_event("not an event")  # type: ignore[arg-type]


class TestStreamMultiplexer:
    @pytest.mark.asyncio
    async def test_frames_in_order(self, token: CancellationToken) -> None:
        frames = await collect(
            StreamMultiplexer().stream(
                source(
                    StepStarted(step=1, message_id="msg-1"),
                    TokenChunk(step=1, text="Hi"),
                    StepFinished(step=1, finish_reason="stop"),
                    Done(finish_reason="stop"),
                ),
                token,
            )
        )

        assert [frame[0] for frame in frames] == ["f", "0", "e", "d"]
        assert not token.is_cancelled

    @pytest.mark.asyncio
    async def test_nothing_after_terminal_event(self, token: CancellationToken) -> None:
        frames = await collect(
            StreamMultiplexer().stream(source(Done(finish_reason="stop"), TokenChunk(step=2, text="late")), token)
        )

        assert frames == ['d:{"finishReason":"stop"}\n']

    @pytest.mark.asyncio
    async def test_exception_becomes_single_error_frame(self, token: CancellationToken) -> None:
        events = source(
            StepStarted(step=1, message_id="msg-1"),
            TokenChunk(step=1, text="partial"),
            error=ModelTransportError("connection reset"),
        )

        frames = await collect(StreamMultiplexer().stream(events, token))

        assert frames[-1] == '3:"Oops, an error occurred!"\n'
        assert sum(frame.startswith("3:") for frame in frames) == 1
        assert not any(frame.startswith("d:") for frame in frames)

    @pytest.mark.asyncio
    async def test_custom_error_message(self, token: CancellationToken) -> None:
        events = source(error=RuntimeError("boom"))

        frames = await collect(StreamMultiplexer("Something broke").stream(events, token))

        assert frames == ['3:"Something broke"\n']

    @pytest.mark.asyncio
    async def test_missing_terminal_event(self, token: CancellationToken) -> None:
        frames = await collect(StreamMultiplexer().stream(source(TokenChunk(step=1, text="Hi")), token))

        assert frames == ['0:"Hi"\n', '3:"Oops, an error occurred!"\n']

    @pytest.mark.asyncio
    async def test_consumer_stop_cancels_run(self, token: CancellationToken) -> None:
        closed: list[bool] = []

        async def endless() -> AsyncIterator[OrchestrationEvent]:
            try:
                while True:
                    yield TokenChunk(step=1, text="more")
            finally:
                closed.append(True)

        frames = StreamMultiplexer().stream(endless(), token)
        assert await anext(frames) == '0:"more"\n'
        await frames.aclose()

        assert token.is_cancelled
        assert token.cancel_reason == "client disconnected"
        assert closed == [True]


class TestChatServiceStream:
    @pytest.mark.asyncio
    async def test_weather_run(self, registry: ToolRegistry) -> None:
        adapter = ScriptedModelAdapter(
            text("Let me check. ") + tool_call("call-1", "getWeather", {"city": "London"}) + finish("tool-calls"),
            text("It is 25°C and sunny in London.") + finish("stop"),
        )
        service = ChatService(adapter, registry)

        frames = await collect(service.stream_chat([Message.user("Weather in London?")], user_id="user-1"))

        assert [frame[0] for frame in frames] == ["f", "0", "b", "c", "c", "9", "a", "e", "f", "0", "e", "d"]
        assert frames[6] == 'a:{"toolCallId":"call-1","result":"The weather in London is 25°C and sunny."}\n'
        assert frames[-1] == 'd:{"finishReason":"stop"}\n'

    @pytest.mark.asyncio
    async def test_caller_messages_not_mutated(self, registry: ToolRegistry) -> None:
        service = ChatService(ScriptedModelAdapter(text("Hi!") + finish("stop")), registry)
        messages = [Message.user("Hello")]

        await collect(service.stream_chat(messages))

        assert len(messages) == 1

    @pytest.mark.asyncio
    async def test_transport_error_frame(self, registry: ToolRegistry) -> None:
        adapter = ScriptedModelAdapter([ModelTransportError("upstream 500")])
        service = ChatService(adapter, registry, error_message="Try again later")

        frames = await collect(service.stream_chat([Message.user("Hello")]))

        assert frames[0].startswith("f:")
        assert frames[-1] == '3:"Try again later"\n'

    @pytest.mark.asyncio
    async def test_step_budget_is_applied(self, registry: ToolRegistry) -> None:
        adapter = ScriptedModelAdapter(tool_call("call-1", "getWeather", {"city": "Oslo"}) + finish("tool-calls"))
        service = ChatService(adapter, registry, max_steps=2)

        frames = await collect(service.stream_chat([Message.user("Hello")]))

        assert frames[-1] == 'd:{"finishReason":"step-budget-exceeded"}\n'
        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_consumer_task_cancel_stops_pending_tool(self) -> None:
        started = asyncio.Event()
        observed: list[str] = []

        class SleepArgs(BaseModel):
            seconds: float

        async def sleep_tool(args: SleepArgs, token: CancellationToken) -> str:
            started.set()
            try:
                await asyncio.sleep(args.seconds)
            except asyncio.CancelledError:
                observed.append("cancelled")
                raise
            return "slept"

        registry = ToolRegistry(
            [ToolDefinition(name="slow", description="Sleep for a while", parameters=SleepArgs, execute=sleep_tool)]
        )
        adapter = ScriptedModelAdapter(
            tool_call("c1", "slow", {"seconds": 10}) + finish("tool-calls"),
            text("Done sleeping.") + finish("stop"),
        )
        service = ChatService(adapter, registry)
        frames: list[str] = []

        async def consume() -> None:
            async for frame in service.stream_chat([Message.user("Take a nap")]):
                frames.append(frame)

        consumer = asyncio.create_task(consume())
        await asyncio.wait_for(started.wait(), timeout=1.0)
        consumer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(consumer, timeout=2.0)

        assert observed == ["cancelled"]
        assert adapter.call_count == 1
        assert not any(frame.startswith(("a:", "d:")) for frame in frames)
