"""Tests for the fixed-window request quota."""

import asyncio

import pytest

from deepsearch.api.middleware.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimitGate,
    get_rate_limit_gate,
    reset_rate_limit_gate,
)
from deepsearch.core.constants import clear_settings_cache

DAY = 86400


class FakeClock:
    def __init__(self, now: float = 10 * DAY + 3600):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate(clock: FakeClock) -> RateLimitGate:
    return RateLimitGate(limit=3, window_seconds=DAY, clock=clock)


class TestQuota:
    @pytest.mark.asyncio
    async def test_limit_plus_one_is_rejected(self, gate: RateLimitGate) -> None:
        results = [await gate.check_and_record("user-1") for _ in range(4)]

        assert results == [True, True, True, False]
        assert await gate.remaining("user-1") == 0

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, gate: RateLimitGate) -> None:
        for _ in range(3):
            await gate.check_and_record("user-1")

        assert await gate.check_and_record("user-1") is False
        assert await gate.check_and_record("user-2") is True
        assert await gate.remaining("user-2") == 2

    @pytest.mark.asyncio
    async def test_rejection_is_not_counted(self, gate: RateLimitGate) -> None:
        for _ in range(5):
            await gate.check_and_record("user-1")

        assert await gate.store.get_count("user-1", gate.window_start()) == 3

    @pytest.mark.asyncio
    async def test_check_then_record(self, gate: RateLimitGate) -> None:
        for _ in range(3):
            assert await gate.check_rate_limit("user-1") is True
            await gate.record_request("user-1")

        assert await gate.check_rate_limit("user-1") is False

    @pytest.mark.asyncio
    async def test_separate_check_and_record_can_overshoot(self, clock: FakeClock) -> None:
        gate = RateLimitGate(limit=1, window_seconds=DAY, clock=clock)

        # Both requests pass the check before either is recorded
        first, second = await asyncio.gather(gate.check_rate_limit("user-1"), gate.check_rate_limit("user-1"))
        await gate.record_request("user-1")
        await gate.record_request("user-1")

        assert first and second
        assert await gate.store.get_count("user-1", gate.window_start()) == 2

    @pytest.mark.asyncio
    async def test_concurrent_check_and_record_is_exact(self, clock: FakeClock) -> None:
        gate = RateLimitGate(limit=5, window_seconds=DAY, clock=clock)

        results = await asyncio.gather(*(gate.check_and_record("user-1") for _ in range(20)))

        assert results.count(True) == 5


class TestWindow:
    def test_window_aligned_to_utc_midnight(self, gate: RateLimitGate, clock: FakeClock) -> None:
        assert gate.window_start() == 10 * DAY
        clock.now = 11 * DAY - 1
        assert gate.window_start() == 10 * DAY
        clock.now = 11 * DAY
        assert gate.window_start() == 11 * DAY

    def test_seconds_until_reset(self, gate: RateLimitGate, clock: FakeClock) -> None:
        assert gate.seconds_until_reset() == DAY - 3600
        clock.now = 11 * DAY - 0.5
        assert gate.seconds_until_reset() == 1

    @pytest.mark.asyncio
    async def test_quota_resets_in_next_window(self, gate: RateLimitGate, clock: FakeClock) -> None:
        for _ in range(3):
            await gate.check_and_record("user-1")
        assert await gate.check_and_record("user-1") is False

        clock.now = 11 * DAY + 1

        assert await gate.check_and_record("user-1") is True
        assert await gate.remaining("user-1") == 2


class TestExemptions:
    @pytest.mark.asyncio
    async def test_exempt_identity(self, clock: FakeClock) -> None:
        gate = RateLimitGate(limit=1, window_seconds=DAY, exempt=["admin"], clock=clock)

        assert all([await gate.check_and_record("admin") for _ in range(5)])
        assert await gate.store.get_count("admin", gate.window_start()) == 0
        assert await gate.check_and_record("user-1") is True
        assert await gate.check_and_record("user-1") is False

    @pytest.mark.asyncio
    async def test_disabled_gate(self, clock: FakeClock) -> None:
        gate = RateLimitGate(limit=1, window_seconds=DAY, enabled=False, clock=clock)

        assert all([await gate.check_and_record("user-1") for _ in range(5)])
        assert await gate.check_rate_limit("user-1") is True

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            RateLimitGate(limit=0)
        with pytest.raises(ValueError):
            RateLimitGate(window_seconds=0)


class TestCleanup:
    @pytest.mark.asyncio
    async def test_purge_before(self) -> None:
        store = InMemoryRateLimitStore()
        await store.increment("old", window_start=0)
        await store.increment("new", window_start=DAY)

        removed = await store.purge_before(DAY)

        assert removed == 1
        assert len(store) == 1
        assert await store.get_count("new", DAY) == 1

    @pytest.mark.asyncio
    async def test_cleanup_loop_purges_past_windows(self, clock: FakeClock) -> None:
        store = InMemoryRateLimitStore()
        gate = RateLimitGate(store=store, limit=3, window_seconds=DAY, clock=clock, cleanup_interval=0.01)
        await gate.check_and_record("user-1")
        clock.now += DAY

        await gate.start()
        try:
            for _ in range(50):
                if len(store) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await gate.stop()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self, gate: RateLimitGate) -> None:
        await gate.stop()


class TestGateSingleton:
    def test_built_from_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_WINDOW", "7")
        monkeypatch.setenv("RATE_LIMIT_EXEMPT_USERS", "admin-1, ops")
        clear_settings_cache()
        reset_rate_limit_gate()

        gate = get_rate_limit_gate()

        assert gate.limit == 7
        assert gate.is_exempt("admin-1")
        assert gate.is_exempt("ops")
        assert not gate.is_exempt("user-1")
        assert get_rate_limit_gate() is gate
