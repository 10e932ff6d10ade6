"""Tests for rate_gate.py: per-scope windows, waiting and the wait cap."""

import asyncio

import pytest

from conftest import FakeClock
from errors import RateLimitExceeded
from rate_gate import RateGate, RateLimit


def make_gate(clock: FakeClock, limit=3, window_ms=1000, max_wait_ms=5000) -> RateGate:
    return RateGate(
        {"hianime": RateLimit(limit, window_ms)},
        max_wait_ms=max_wait_ms,
        clock=clock,
        sleep=clock.sleep,
    )


class TestRateLimit:
    def test_published_limit_gets_safety_margin(self):
        assert RateLimit.from_published(90, 60_000, margin=0.85).limit_per_window == 76

    def test_never_below_one(self):
        assert RateLimit.from_published(1, 1000, margin=0.5).limit_per_window == 1


class TestAcquire:
    async def test_admits_up_to_limit_without_waiting(self, clock):
        gate = make_gate(clock)
        for _ in range(3):
            await gate.acquire("hianime")
        assert clock.sleeps == []
        assert gate.snapshot("hianime").count == 3

    async def test_extra_call_waits_for_rollover(self, clock):
        gate = make_gate(clock)
        for _ in range(3):
            await gate.acquire("hianime")

        await gate.acquire("hianime")

        assert clock.sleeps == [pytest.approx(1.0)]
        window = gate.snapshot("hianime")
        assert window.window_start == pytest.approx(1.0)
        assert window.count == 1

    async def test_concurrent_callers_respect_the_window(self, clock):
        gate = make_gate(clock, limit=3)
        admitted_at = []

        async def call():
            await gate.acquire("hianime")
            admitted_at.append(clock.now)

        await asyncio.gather(*(call() for _ in range(7)))

        assert len(admitted_at) == 7
        assert sum(1 for t in admitted_at if t < 1.0) == 3
        assert sum(1 for t in admitted_at if 1.0 <= t < 2.0) <= 3
        assert sorted(admitted_at)[3] >= 1.0

    async def test_single_wait_is_capped(self, clock):
        gate = make_gate(clock, limit=1, window_ms=12_000, max_wait_ms=5000)
        await gate.acquire("hianime")
        await gate.acquire("hianime")
        assert clock.sleeps == [5.0, 5.0, pytest.approx(2.0)]

    async def test_unknown_scope_is_not_limited(self, clock):
        gate = make_gate(clock, limit=1)
        for _ in range(10):
            await gate.acquire("somewhere-else")
        assert clock.sleeps == []

    async def test_scopes_are_independent(self, clock):
        gate = RateGate(
            {"a": RateLimit(1, 1000), "b": RateLimit(1, 1000)},
            clock=clock,
            sleep=clock.sleep,
        )
        await gate.acquire("a")
        await gate.acquire("b")
        assert clock.sleeps == []


class TestTryAcquire:
    def test_raises_when_window_full(self, clock):
        gate = make_gate(clock, limit=2)
        gate.try_acquire("hianime")
        gate.try_acquire("hianime")
        clock.now = 0.25
        with pytest.raises(RateLimitExceeded) as exc:
            gate.try_acquire("hianime")
        assert exc.value.retry_after == pytest.approx(0.75)

    def test_window_resets_after_length(self, clock):
        gate = make_gate(clock, limit=1)
        gate.try_acquire("hianime")
        clock.now = 1.0
        gate.try_acquire("hianime")
        assert gate.snapshot("hianime").count == 1
