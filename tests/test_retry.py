"""Tests for retry.py: backoff sequence, short-circuit and error classification."""

import httpx
import pytest

from conftest import FakeClock
from retry import RetryPolicy, execute, is_retryable_error


def status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://origin.test/x")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestExecute:
    async def test_backoff_sequence_then_original_error(self, clock: FakeClock):
        error = httpx.ConnectError("refused")
        op = Flaky([error] * 10)
        policy = RetryPolicy(max_attempts=3, base_delay_ms=100, backoff_multiplier=2)

        with pytest.raises(httpx.ConnectError) as exc:
            await execute(op, policy, sleep=clock.sleep)

        assert exc.value is error
        assert op.calls == 3
        assert clock.sleeps == [pytest.approx(0.1), pytest.approx(0.2)]

    async def test_predicate_false_stops_immediately(self, clock):
        error = RuntimeError("boom")
        op = Flaky([error] * 5)
        policy = RetryPolicy(max_attempts=5, base_delay_ms=100, retry_predicate=lambda e: False)

        with pytest.raises(RuntimeError) as exc:
            await execute(op, policy, sleep=clock.sleep)

        assert exc.value is error
        assert op.calls == 1
        assert clock.sleeps == []

    async def test_client_error_is_not_retried(self, clock):
        op = Flaky([status_error(404)] * 3)
        with pytest.raises(httpx.HTTPStatusError):
            await execute(op, RetryPolicy(max_attempts=3, base_delay_ms=10), sleep=clock.sleep)
        assert op.calls == 1

    async def test_recovers_after_transient_failures(self, clock):
        op = Flaky([status_error(503), httpx.ReadTimeout("slow")], result="pages")
        result = await execute(op, RetryPolicy(max_attempts=3, base_delay_ms=50), sleep=clock.sleep)
        assert result == "pages"
        assert op.calls == 3
        assert clock.sleeps == [pytest.approx(0.05), pytest.approx(0.1)]

    async def test_first_attempt_has_no_delay(self, clock):
        op = Flaky([])
        await execute(op, RetryPolicy(max_attempts=3, base_delay_ms=1000), sleep=clock.sleep)
        assert clock.sleeps == []

    async def test_single_attempt_policy(self, clock):
        op = Flaky([httpx.ConnectError("down")] * 2)
        with pytest.raises(httpx.ConnectError):
            await execute(op, RetryPolicy(max_attempts=1), sleep=clock.sleep)
        assert op.calls == 1


class TestPolicy:
    def test_delay_grows_by_multiplier(self):
        policy = RetryPolicy(base_delay_ms=1000, backoff_multiplier=3)
        assert policy.delay_before(1) == 0
        assert policy.delay_before(2) == pytest.approx(1.0)
        assert policy.delay_before(3) == pytest.approx(3.0)
        assert policy.delay_before(4) == pytest.approx(9.0)

    def test_jitter_stays_bounded(self):
        policy = RetryPolicy(base_delay_ms=100, backoff_multiplier=2, jitter_ms=50)
        for _ in range(50):
            assert 0.1 <= policy.delay_before(2) <= 0.15


@pytest.mark.parametrize(
    "error, expected",
    [
        (status_error(429), True),
        (status_error(500), True),
        (status_error(503), True),
        (status_error(400), False),
        (status_error(403), False),
        (status_error(404), False),
        (httpx.ConnectError("refused"), True),
        (httpx.ReadTimeout("slow"), True),
        (TimeoutError(), True),
        (ValueError("weird"), True),
    ],
)
def test_is_retryable_error(error, expected):
    assert is_retryable_error(error) is expected
