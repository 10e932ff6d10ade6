"""
Retry with exponential backoff around origin calls.

Delay before attempt n (n >= 2) is base_delay_ms * backoff_multiplier ** (n - 2).
The last error is re-raised as-is so callers can inspect it.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx

import config

T = TypeVar("T")


def is_retryable_error(error: BaseException) -> bool:
    """Network failures, timeouts, 429 and 5xx retry. Other 4xx don't. Unknown errors do."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429 or status >= 500:
            return True
        return not 400 <= status < 500
    # connection errors, timeouts (httpx.TimeoutException) and anything unclassified
    return True


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = config.MAX_RETRY_ATTEMPTS
    base_delay_ms: int = config.RETRY_DELAY_MS
    backoff_multiplier: float = config.RETRY_BACKOFF_MULTIPLIER
    retry_predicate: Callable[[BaseException], bool] = field(default=is_retryable_error)
    jitter_ms: int = config.RETRY_JITTER_MS

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before `attempt` (1-based). Zero for the first one."""
        if attempt < 2:
            return 0.0
        delay_ms = self.base_delay_ms * self.backoff_multiplier ** (attempt - 2)
        if self.jitter_ms > 0:
            delay_ms += random.uniform(0, self.jitter_ms)
        return delay_ms / 1000


async def execute(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    label: str = "operation",
    sleep=asyncio.sleep,
) -> T:
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        if attempt > 1:
            delay = policy.delay_before(attempt)
            print(f"[retry] {label}: attempt {attempt}/{attempts} in {delay:.2f}s")
            await sleep(delay)
        try:
            return await operation()
        except Exception as e:
            if not policy.retry_predicate(e):
                print(f"[retry] {label}: non-retryable error, giving up: {e!r}")
                raise
            if attempt == attempts:
                print(f"[retry] {label}: failed after {attempts} attempts: {e!r}")
                raise
            print(f"[retry] {label}: attempt {attempt} failed: {e!r}")
