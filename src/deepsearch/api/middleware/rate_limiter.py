"""Per-user request quota for the chat endpoint.

Provides a fixed-window admission gate:
- Fixed quota per identity per window (default 50 per UTC day)
- Window boundaries aligned to the epoch, so a daily window resets at 00:00 UTC
- Exempt identities (administrators) that are never counted
- Quota state behind the RateLimitStore protocol; InMemoryRateLimitStore provided
- Automatic cleanup of records from past windows

``check_rate_limit`` followed by ``record_request`` is two separate store
operations, so concurrent requests from one identity can both pass the check
before either is recorded. ``check_and_record`` does both under the store lock
and is what the chat endpoint uses.
"""

from __future__ import annotations

import asyncio
import contextlib
import math
import time

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from deepsearch.core.constants import get_settings
from deepsearch.utils.logger import logger

Clock = Callable[[], float]


@dataclass
class RateLimitRecord:
    """Request count for one identity in one window."""

    identity: str
    window_start: float
    count: int = 0


class RateLimitStore(Protocol):
    """Storage for quota records, keyed by identity."""

    async def get_count(self, identity: str, window_start: float) -> int:
        """Requests recorded for ``identity`` in the window starting at ``window_start``."""
        ...

    async def increment(self, identity: str, window_start: float) -> int:
        """Record one request and return the new count."""
        ...

    async def increment_if_below(self, identity: str, window_start: float, limit: int) -> tuple[bool, int]:
        """Atomically record one request if the count is below ``limit``.

        Returns (recorded, count after the operation).
        """
        ...

    async def purge_before(self, window_start: float) -> int:
        """Drop records from windows older than ``window_start``; returns how many."""
        ...


class InMemoryRateLimitStore:
    """Process-local store guarded by an asyncio.Lock."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = asyncio.Lock()

    def _current(self, identity: str, window_start: float) -> RateLimitRecord:
        """Record for the given window, replacing a stale one. Caller holds the lock."""
        record = self._records.get(identity)
        if record is None or record.window_start != window_start:
            record = RateLimitRecord(identity=identity, window_start=window_start)
            self._records[identity] = record
        return record

    async def get_count(self, identity: str, window_start: float) -> int:
        async with self._lock:
            record = self._records.get(identity)
            if record is None or record.window_start != window_start:
                return 0
            return record.count

    async def increment(self, identity: str, window_start: float) -> int:
        async with self._lock:
            record = self._current(identity, window_start)
            record.count += 1
            return record.count

    async def increment_if_below(self, identity: str, window_start: float, limit: int) -> tuple[bool, int]:
        async with self._lock:
            record = self._current(identity, window_start)
            if record.count >= limit:
                return False, record.count
            record.count += 1
            return True, record.count

    async def purge_before(self, window_start: float) -> int:
        async with self._lock:
            expired = [identity for identity, record in self._records.items() if record.window_start < window_start]
            for identity in expired:
                del self._records[identity]
            return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class RateLimitGate:
    """Admission gate enforcing a fixed quota per identity per window."""

    def __init__(
        self,
        store: RateLimitStore | None = None,
        limit: int = 50,
        window_seconds: int = 86400,
        exempt: Iterable[str] = (),
        enabled: bool = True,
        clock: Clock = time.time,
        cleanup_interval: float = 3600.0,
    ) -> None:
        """Initialize the gate.

        Args:
            store: Quota store (defaults to a fresh in-memory store)
            limit: Requests allowed per identity per window
            window_seconds: Window length; 86400 gives one UTC day
            exempt: Identities that bypass the quota and are not counted
            enabled: When False every request is admitted and nothing is counted
            clock: Wall-clock source in epoch seconds
            cleanup_interval: How often to purge records from past windows (seconds)
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be at least 1")
        self.store: RateLimitStore = store if store is not None else InMemoryRateLimitStore()
        self.limit = limit
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._exempt = frozenset(exempt)
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._cleanup_task: asyncio.Task[None] | None = None

    def window_start(self, now: float | None = None) -> float:
        """Start of the window containing ``now``."""
        now = self._clock() if now is None else now
        return math.floor(now / self.window_seconds) * self.window_seconds

    def seconds_until_reset(self) -> int:
        now = self._clock()
        return max(1, math.ceil(self.window_start(now) + self.window_seconds - now))

    def is_exempt(self, identity: str) -> bool:
        return not self.enabled or identity in self._exempt

    async def check_rate_limit(self, identity: str) -> bool:
        """True if ``identity`` is still below its quota for the current window."""
        if self.is_exempt(identity):
            return True
        count = await self.store.get_count(identity, self.window_start())
        return count < self.limit

    async def record_request(self, identity: str) -> None:
        """Count one request for ``identity`` in the current window."""
        if self.is_exempt(identity):
            return
        count = await self.store.increment(identity, self.window_start())
        logger.debug(f"Recorded request {count}/{self.limit} for {identity}")

    async def check_and_record(self, identity: str) -> bool:
        """Check and record as one atomic store operation."""
        if self.is_exempt(identity):
            return True
        allowed, count = await self.store.increment_if_below(identity, self.window_start(), self.limit)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {identity} ({count}/{self.limit} in current window)")
        return allowed

    async def remaining(self, identity: str) -> int:
        if self.is_exempt(identity):
            return self.limit
        count = await self.store.get_count(identity, self.window_start())
        return max(0, self.limit - count)

    async def start(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Rate limit cleanup task started")

    async def stop(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
            logger.info("Rate limit cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            removed = await self.store.purge_before(self.window_start())
            if removed:
                logger.debug(f"Rate limit cleanup: removed {removed} expired records")


class _GateManager:
    """Holds the process-wide gate built from settings."""

    __slots__ = ("_gate",)

    def __init__(self) -> None:
        self._gate: RateLimitGate | None = None

    def get(self) -> RateLimitGate:
        if self._gate is None:
            settings = get_settings()
            self._gate = RateLimitGate(
                limit=settings.rate_limit_requests_per_window,
                window_seconds=settings.rate_limit_window_seconds,
                exempt=settings.rate_limit_exempt_list,
                enabled=settings.rate_limit_enabled,
            )
        return self._gate

    def reset(self) -> None:
        self._gate = None


_gate_manager = _GateManager()


def get_rate_limit_gate() -> RateLimitGate:
    """Get or create the singleton rate limit gate."""
    return _gate_manager.get()


def reset_rate_limit_gate() -> None:
    """Drop the singleton gate (used by tests)."""
    _gate_manager.reset()


__all__ = [
    "InMemoryRateLimitStore",
    "RateLimitGate",
    "RateLimitRecord",
    "RateLimitStore",
    "get_rate_limit_gate",
    "reset_rate_limit_gate",
]
