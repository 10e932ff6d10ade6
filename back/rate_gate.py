"""
Outbound rate throttling, one window per upstream scope.

Soft fixed-window limiter: a burst straddling a window boundary can
admit up to twice the limit, which is accepted. The gate is owned by
whoever builds the Resolver; there is no module-level instance.
"""

import asyncio
import math
import time
from dataclasses import dataclass

import config
from errors import RateLimitExceeded


@dataclass(frozen=True)
class RateLimit:
    limit_per_window: int
    window_ms: int

    @classmethod
    def from_published(cls, published: int, window_ms: int, margin: float = config.RATE_SAFETY_MARGIN) -> "RateLimit":
        """Run below the advertised capacity, e.g. 90/min * 0.85 -> 76/min."""
        return cls(max(1, math.floor(published * margin)), window_ms)


@dataclass
class RateWindow:
    window_start: float
    count: int
    limit_per_window: int
    window_length_ms: int


def default_limits() -> dict[str, RateLimit]:
    return {
        scope: RateLimit.from_published(published, window_ms)
        for scope, (published, window_ms) in config.PUBLISHED_RATE_LIMITS.items()
    }


class RateGate:
    def __init__(
        self,
        limits: dict[str, RateLimit] | None = None,
        max_wait_ms: int = config.RATE_MAX_WAIT_MS,
        clock=time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.limits = default_limits() if limits is None else dict(limits)
        self.max_wait = max_wait_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._windows: dict[str, RateWindow] = {}

    def _admit(self, scope: str) -> float:
        """
        Reset-then-increment for one scope. Returns 0 when a slot was
        taken, otherwise the seconds left in the current window.
        No await happens in here, so concurrent callers on the event loop
        can never interleave between the check and the increment.
        """
        limit = self.limits.get(scope)
        if limit is None:
            return 0.0

        now = self._clock()
        window = self._windows.get(scope)
        length = limit.window_ms / 1000
        if window is None or now >= window.window_start + length:
            window = RateWindow(now, 0, limit.limit_per_window, limit.window_ms)
            self._windows[scope] = window

        if window.count < window.limit_per_window:
            window.count += 1
            return 0.0
        return max(window.window_start + length - now, 0.001)

    def try_acquire(self, scope: str) -> None:
        """Non-blocking variant. Raises RateLimitExceeded when the window is full."""
        wait = self._admit(scope)
        if wait > 0:
            raise RateLimitExceeded(scope, wait)

    async def acquire(self, scope: str) -> None:
        """Wait until a slot is free under `scope`. Never raises RateLimitExceeded."""
        while True:
            try:
                self.try_acquire(scope)
                return
            except RateLimitExceeded as e:
                wait = min(e.retry_after, self.max_wait)
                print(f"[rate_gate] '{scope}' window full, waiting {wait:.2f}s")
                await self._sleep(wait)

    def snapshot(self, scope: str) -> RateWindow | None:
        window = self._windows.get(scope)
        if window is None:
            return None
        return RateWindow(window.window_start, window.count, window.limit_per_window, window.window_length_ms)
