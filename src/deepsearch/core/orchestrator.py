"""
Agent orchestrator: the bounded "generate, call tools, resume" step loop.

``AgentOrchestrator.run`` turns one conversation into a lazy, finite
sequence of orchestration events:

    StepStarted, (TokenChunk | ToolCallStarted | ToolCallDelta | ToolCall)*,
    ToolResult*, StepFinished, ... , Done

Tool calls complete within a step run concurrently as asyncio tasks; all of a
step's ToolResults and tool messages are produced before the next model
invocation. Tool failures are data (error results). Model transport failures
raise ModelTransportError. A fired token ends the run with
``Done(cancelled=True)``; cancelling the consuming task raises CancelledError
after pending tools are cancelled.
"""

from __future__ import annotations

import asyncio
import time
import uuid

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from deepsearch.core.cancellation import CancellationToken, cancel_and_wait, caller_cancelled
from deepsearch.core.constants import (
    FINISH_REASON_CANCELLED,
    FINISH_REASON_STEP_BUDGET,
    FINISH_REASON_TOOL_CALLS,
    MAX_STEPS,
    TOOL_CANCEL_GRACE_SECONDS,
)
from deepsearch.core.exceptions import (
    DeepSearchError,
    ModelTransportError,
    ToolArgumentError,
    ToolExecutionError,
    UnknownToolError,
)
from deepsearch.integrations.model_adapter import ModelAdapter
from deepsearch.models.chat_models import (
    Conversation,
    Message,
    TextPart,
    ToolInvocationPart,
    ToolInvocationRecord,
    ToolInvocationState,
)
from deepsearch.models.error_models import ErrorCode
from deepsearch.models.event_models import (
    Done,
    FinishReason,
    ModelSignal,
    OrchestrationEvent,
    StepFinish,
    StepFinished,
    StepStarted,
    TextFragment,
    TokenChunk,
    ToolCall,
    ToolCallDelta,
    ToolCallFragment,
    ToolCallStarted,
    ToolResult,
)
from deepsearch.tools.registry import ToolExecutionResult, ToolRegistry
from deepsearch.utils.logger import logger
from deepsearch.utils.metrics import agent_runs_total, agent_steps_total


def generate_message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:24]}"


@dataclass
class StepRecord:
    """What one step saw and produced."""

    step: int
    conversation_length: int
    message_id: str
    text: str = ""
    invocations: list[ToolInvocationRecord] = field(default_factory=list)
    finish_reason: FinishReason | None = None


class _StepState:
    """Mutable bookkeeping for the step in progress."""

    def __init__(self, record: StepRecord):
        self.record = record
        self.message = Message(role="assistant")
        self.invocations: dict[str, ToolInvocationRecord] = {}
        self.call_order: list[str] = []
        self.tasks: dict[str, asyncio.Task[ToolExecutionResult]] = {}
        self.resolved: dict[str, ToolExecutionResult] = {}

    def append_text(self, text: str) -> None:
        self.record.text += text
        last = self.message.parts[-1] if self.message.parts else None
        if isinstance(last, TextPart):
            last.text += text
        else:
            self.message.parts.append(TextPart(text=text))

    def add_invocation(self, invocation: ToolInvocationRecord) -> None:
        self.invocations[invocation.tool_call_id] = invocation
        self.record.invocations.append(invocation)
        self.message.parts.append(ToolInvocationPart(tool_invocation=invocation))

    def drop_incomplete(self) -> list[str]:
        """Remove invocations whose arguments never completed."""
        dropped = [
            call_id
            for call_id, invocation in self.invocations.items()
            if invocation.state is ToolInvocationState.PARTIAL_CALL
        ]
        if dropped:
            self.message.parts = [
                part
                for part in self.message.parts
                if not (isinstance(part, ToolInvocationPart) and part.tool_invocation.tool_call_id in dropped)
            ]
            self.record.invocations = [inv for inv in self.record.invocations if inv.tool_call_id not in dropped]
            for call_id in dropped:
                del self.invocations[call_id]
        return dropped


class AgentOrchestrator:
    """Runs the step loop for a single conversation.

    A run is single-use: construct a fresh orchestrator per request.

    Usage:
        orchestrator = AgentOrchestrator(adapter, registry, max_steps=10)
        async for event in orchestrator.run(conversation, token):
            ...
    """

    def __init__(
        self,
        model: ModelAdapter,
        registry: ToolRegistry,
        max_steps: int = MAX_STEPS,
        tool_cancel_grace: float = TOOL_CANCEL_GRACE_SECONDS,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._model = model
        self._registry = registry
        self._max_steps = max_steps
        self._tool_cancel_grace = tool_cancel_grace
        self._started = False
        self.conversation: Conversation = []
        self.steps: list[StepRecord] = []
        self.model_invocations = 0

    def run(self, conversation: Conversation, token: CancellationToken) -> AsyncIterator[OrchestrationEvent]:
        """Start the run. ``conversation`` is appended to in place.

        Raises:
            RuntimeError: The orchestrator has already been run
        """
        if self._started:
            raise RuntimeError("AgentOrchestrator.run may only be called once per instance")
        self._started = True
        self.conversation = conversation
        return self._run(token)

    async def _run(self, token: CancellationToken) -> AsyncIterator[OrchestrationEvent]:
        catalog = self._registry.catalog()
        started = time.monotonic()
        outcome = "transport_error"

        for step in range(1, self._max_steps + 1):
            if token.is_cancelled:
                outcome = FINISH_REASON_CANCELLED
                break

            state = _StepState(
                StepRecord(step=step, conversation_length=len(self.conversation), message_id=generate_message_id())
            )
            self.steps.append(state.record)
            self.model_invocations += 1
            agent_steps_total.inc()
            logger.debug(f"Step {step}/{self._max_steps} started", step=step)

            yield StepStarted(step=step, message_id=state.record.message_id)

            finish_reason: FinishReason | None = None
            try:
                signals = self._model.generate_step(list(self.conversation), catalog)
                try:
                    while True:
                        signal = await token.run_until_cancelled(anext(signals, None))
                        if signal is None:
                            break
                        if isinstance(signal, StepFinish):
                            finish_reason = signal.finish_reason
                            continue
                        for event in self._handle_signal(state, signal, token):
                            yield event
                finally:
                    aclose = getattr(signals, "aclose", None)
                    if aclose is not None:
                        await aclose()

                dropped = state.drop_incomplete()
                if dropped:
                    logger.warning(f"Step {step}: dropping tool calls with incomplete arguments: {dropped}")
                if state.message.parts:
                    self.conversation.append(state.message)

                if not await self._wait_for_tools(state, token):
                    raise asyncio.CancelledError(token.cancel_reason)

                for event in self._collect_results(state):
                    yield event
            except asyncio.CancelledError:
                # Only a fired token ends the run with Done; a cancelled consumer task propagates
                if not token.is_cancelled or caller_cancelled():
                    agent_runs_total.labels(outcome=FINISH_REASON_CANCELLED).inc()
                    raise
                outcome = FINISH_REASON_CANCELLED
                break
            except DeepSearchError:
                agent_runs_total.labels(outcome=outcome).inc()
                raise
            except Exception as e:
                agent_runs_total.labels(outcome=outcome).inc()
                logger.error(f"Model adapter failed on step {step}: {e}", exc_info=True, step=step)
                raise ModelTransportError(f"Model adapter failed: {e}", cause=e) from e
            finally:
                # Also reached when the consumer closes the generator
                await self._cancel_tools(state)

            if finish_reason is None:
                logger.warning(f"Step {step}: model stream ended without a finish signal")
                finish_reason = "error"
            state.record.finish_reason = finish_reason

            yield StepFinished(step=step, finish_reason=finish_reason)
            logger.info(
                f"Step {step} finished: {finish_reason} "
                f"[{len(state.record.text)} chars, {len(state.record.invocations)} tool calls]",
                step=step,
                finish_reason=finish_reason,
            )

            if finish_reason != FINISH_REASON_TOOL_CALLS:
                outcome = finish_reason
                break
        else:
            outcome = FINISH_REASON_STEP_BUDGET
            logger.warning(f"Step budget of {self._max_steps} exhausted while tools were still requested")

        agent_runs_total.labels(outcome=outcome).inc()
        elapsed_ms = (time.monotonic() - started) * 1000

        if outcome == FINISH_REASON_CANCELLED:
            logger.info(
                f"Run cancelled after {self.model_invocations} model calls [{elapsed_ms:.0f}ms]",
                reason=token.cancel_reason,
            )
            yield Done(finish_reason=FINISH_REASON_CANCELLED, cancelled=True)
            return

        logger.info(f"Run finished: {outcome} after {self.model_invocations} model calls [{elapsed_ms:.0f}ms]")
        yield Done(finish_reason=outcome)

    def _handle_signal(
        self,
        state: _StepState,
        signal: ModelSignal,
        token: CancellationToken,
    ) -> list[OrchestrationEvent]:
        if isinstance(signal, TextFragment):
            if not signal.text:
                return []
            state.append_text(signal.text)
            return [TokenChunk(step=state.record.step, text=signal.text)]

        if isinstance(signal, ToolCallFragment):
            if signal.complete:
                return self._complete_call(state, signal, token)
            return self._partial_call(state, signal)

        return []

    def _partial_call(self, state: _StepState, fragment: ToolCallFragment) -> list[OrchestrationEvent]:
        events: list[OrchestrationEvent] = []
        invocation = state.invocations.get(fragment.tool_call_id)
        if invocation is None:
            invocation = ToolInvocationRecord(tool_call_id=fragment.tool_call_id, tool_name=fragment.tool_name)
            state.add_invocation(invocation)
            events.append(ToolCallStarted(tool_call_id=fragment.tool_call_id, tool_name=fragment.tool_name))
        elif invocation.state is not ToolInvocationState.PARTIAL_CALL:
            logger.warning(f"Ignoring argument fragment for completed tool call {fragment.tool_call_id}")
            return events
        if fragment.args_text_delta:
            events.append(ToolCallDelta(tool_call_id=fragment.tool_call_id, args_text_delta=fragment.args_text_delta))
        return events

    def _complete_call(
        self,
        state: _StepState,
        fragment: ToolCallFragment,
        token: CancellationToken,
    ) -> list[OrchestrationEvent]:
        call_id = fragment.tool_call_id
        invocation = state.invocations.get(call_id)
        if invocation is None:
            invocation = ToolInvocationRecord(
                tool_call_id=call_id,
                tool_name=fragment.tool_name,
                args=fragment.args,
                state=ToolInvocationState.CALL,
            )
            state.add_invocation(invocation)
        else:
            invocation.mark_call(fragment.args)
        state.call_order.append(call_id)

        try:
            params = self._registry.validate(invocation.tool_name, fragment.args)
        except (UnknownToolError, ToolArgumentError) as e:
            logger.warning(f"Tool call {call_id} rejected: {e.message}", tool=invocation.tool_name)
            state.resolved[call_id] = ToolExecutionResult.from_error(e)
        else:
            state.tasks[call_id] = asyncio.create_task(
                self._registry.invoke(invocation.tool_name, params, token, tool_call_id=call_id),
                name=f"tool:{invocation.tool_name}:{call_id}",
            )
            logger.debug(f"Tool {invocation.tool_name} started [{call_id}]")

        return [ToolCall(tool_call_id=call_id, tool_name=invocation.tool_name, args=invocation.args)]

    async def _wait_for_tools(self, state: _StepState, token: CancellationToken) -> bool:
        """Wait for every tool task of the step. False if cancelled first."""
        remaining: set[asyncio.Future[Any]] = set(state.tasks.values())
        if not remaining:
            return not token.is_cancelled

        waiter = asyncio.ensure_future(token.wait_for_cancellation())
        try:
            while remaining:
                done, _ = await asyncio.wait(remaining | {waiter}, return_when=asyncio.FIRST_COMPLETED)
                if waiter in done:
                    return False
                remaining -= done
            return True
        finally:
            await cancel_and_wait(waiter)

    async def _cancel_tools(self, state: _StepState) -> None:
        """Cancel unfinished tool tasks and give them a bounded grace period."""
        pending = [task for task in state.tasks.values() if not task.done()]
        if not pending:
            return
        for task in pending:
            task.cancel()
        _, still_running = await asyncio.wait(pending, timeout=self._tool_cancel_grace)
        if still_running:
            logger.warning(f"{len(still_running)} tool task(s) did not stop within {self._tool_cancel_grace:g}s")

    def _collect_results(self, state: _StepState) -> list[OrchestrationEvent]:
        """Resolve invocations in call order and append one tool message each."""
        events: list[OrchestrationEvent] = []
        for call_id in state.call_order:
            outcome = state.resolved.get(call_id)
            if outcome is None:
                task = state.tasks[call_id]
                if task.cancelled():
                    outcome = ToolExecutionResult.from_error(
                        ToolExecutionError("Tool execution was cancelled", code=ErrorCode.TOOL_CANCELLED)
                    )
                elif (error := task.exception()) is not None:
                    outcome = ToolExecutionResult.from_error(ToolExecutionError(str(error), cause=error))
                else:
                    outcome = task.result()

            invocation = state.invocations[call_id]
            invocation.mark_result(outcome.result, is_error=outcome.is_error)
            self.conversation.append(Message(role="tool", parts=[ToolInvocationPart(tool_invocation=invocation)]))
            events.append(
                ToolResult(
                    tool_call_id=call_id,
                    tool_name=invocation.tool_name,
                    result=outcome.result,
                    is_error=outcome.is_error,
                )
            )
        return events


__all__ = ["AgentOrchestrator", "StepRecord"]
