"""
Cancellation token for cooperative run cancellation.

One token is created per chat request. The stream multiplexer cancels it
when the client goes away; the orchestrator and every tool observe it at
their suspension points.

Two kinds of cancellation meet here: the token firing, and ``Task.cancel()``
on the task that is consuming the run. Helpers that cancel and reap a child
future must not mistake the second for the first, so they re-raise whenever
the current task has a pending cancellation request.
"""

from __future__ import annotations

import asyncio

from collections.abc import Awaitable
from typing import Any, TypeVar

T = TypeVar("T")


def caller_cancelled() -> bool:
    """True while the current task has an outstanding ``Task.cancel()`` request."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


async def cancel_and_wait(future: asyncio.Future[Any]) -> None:
    """Cancel ``future`` and wait until it has finished.

    The child's own CancelledError is absorbed. A CancelledError aimed at the
    calling task, including one delivered while waiting here, is re-raised.
    """
    future.cancel()
    try:
        await future
    except asyncio.CancelledError:
        if caller_cancelled():
            raise


class CancellationToken:
    """Cooperative cancellation token for async task cancellation.

    Provides:
    - Cancellation signaling via asyncio.Event
    - Async waiting for cancellation with timeout support
    - Racing an awaitable against cancellation (``run_until_cancelled``)

    Usage:
        token = CancellationToken()

        # In producer/controller:
        token.cancel()

        # In consumer/worker:
        if token.is_cancelled:
            return  # Early exit

        # Or abort a pending await:
        result = await token.run_until_cancelled(client.get(url))
    """

    __slots__ = ("_cancel_reason", "_cancelled")

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()
        self._cancel_reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled.is_set()

    @property
    def cancel_reason(self) -> str | None:
        """Get the reason for cancellation, if any."""
        return self._cancel_reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Idempotent: the first reason wins.

        Synchronous, so it can be called from a generator ``finally`` during
        ``aclose``.
        """
        if self._cancelled.is_set():
            return
        self._cancel_reason = reason
        self._cancelled.set()

    async def wait_for_cancellation(self, timeout: float | None = None) -> bool:
        """Wait for cancellation to be requested.

        Args:
            timeout: Maximum time to wait (None = wait forever)

        Returns:
            True if cancelled, False if timeout expired
        """
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def check(self) -> None:
        """Check cancellation and raise if cancelled.

        Raises:
            asyncio.CancelledError: If token is cancelled
        """
        if self.is_cancelled:
            raise asyncio.CancelledError(self._cancel_reason or "Cancellation requested")

    async def run_until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        The awaitable runs as a task; if the token is cancelled while it is
        pending, the task is cancelled and awaited before CancelledError is
        raised to the caller. Cancelling the calling task cancels the child
        as well and propagates.

        Raises:
            asyncio.CancelledError: If token is cancelled before completion
        """
        if self.is_cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.check()

        task: asyncio.Future[T] = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await cancel_and_wait(task)
            raise
        finally:
            await cancel_and_wait(waiter)

        if task.done():
            return task.result()

        await cancel_and_wait(task)
        raise asyncio.CancelledError(self._cancel_reason or "Cancellation requested")


__all__ = ["CancellationToken", "cancel_and_wait", "caller_cancelled"]
