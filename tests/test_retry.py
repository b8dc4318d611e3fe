"""Tests for the async retry wrapper."""

import asyncio
import random

import pytest

from glean.errors import (
    NotionAPIError,
    OperationCancelledError,
    OperationTimeoutError,
    RetryExhaustedError,
)
from glean.retry import CancellationToken, RetryPolicy, is_retryable, with_retry

FAST = RetryPolicy(
    max_attempts=3,
    initial_delay=0.001,
    backoff_factor=2.0,
    max_delay=0.01,
    jitter=0.0,
    attempt_timeout=1.0,
    overall_timeout=5.0,
)


class Flaky:
    def __init__(self, failures: list[BaseException], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestRetryPolicy:
    def test_delay_grows_exponentially(self):
        policy = RetryPolicy(initial_delay=1, backoff_factor=2, max_delay=100, jitter=0)
        assert policy.delay_for(1) == 1
        assert policy.delay_for(2) == 2
        assert policy.delay_for(3) == 4

    def test_delay_capped(self):
        policy = RetryPolicy(initial_delay=1, backoff_factor=10, max_delay=5, jitter=0)
        assert policy.delay_for(4) == 5

    def test_jitter_bounds(self):
        policy = RetryPolicy(initial_delay=1, backoff_factor=1, max_delay=10, jitter=0.25)
        rng = random.Random(7)
        for _ in range(50):
            assert 0.75 <= policy.delay_for(1, rng) <= 1.25


class TestIsRetryable:
    def test_notion_statuses(self):
        assert is_retryable(NotionAPIError(status=429))
        assert not is_retryable(NotionAPIError(status=400))

    def test_plain_exception(self):
        assert not is_retryable(ValueError("x"))


class TestWithRetry:
    def test_succeeds_after_transient_failures(self):
        op = Flaky([NotionAPIError(status=500), NotionAPIError(status=502)])
        assert asyncio.run(with_retry(op, FAST, name="op")) == "ok"
        assert op.calls == 3

    def test_exhaustion_raises_typed_error(self):
        op = Flaky([NotionAPIError(status=500)] * 5)
        with pytest.raises(RetryExhaustedError) as exc_info:
            asyncio.run(with_retry(op, FAST, name="op"))
        assert op.calls == 3
        assert exc_info.value.attempts == 3

    def test_non_retryable_propagates_immediately(self):
        op = Flaky([NotionAPIError(status=404)])
        with pytest.raises(NotionAPIError):
            asyncio.run(with_retry(op, FAST))
        assert op.calls == 1

    def test_attempt_timeout_is_retried(self):
        calls = 0

        async def slow_then_fast() -> str:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "done"

        policy = FAST.model_copy(update={"attempt_timeout": 0.05})
        assert asyncio.run(with_retry(slow_then_fast, policy)) == "done"
        assert calls == 2

    def test_overall_timeout(self):
        async def never() -> str:
            await asyncio.sleep(10)
            return "late"

        policy = FAST.model_copy(
            update={"attempt_timeout": 0.05, "overall_timeout": 0.12, "max_attempts": 10}
        )
        with pytest.raises(OperationTimeoutError):
            asyncio.run(with_retry(never, policy))

    def test_retry_after_sets_minimum_delay(self):
        op = Flaky([NotionAPIError(status=429, retry_after=0.05)])

        async def run() -> float:
            loop = asyncio.get_running_loop()
            start = loop.time()
            await with_retry(op, FAST)
            return loop.time() - start

        assert asyncio.run(run()) >= 0.05

    def test_cancelled_token_stops_before_first_attempt(self):
        token = CancellationToken()
        op = Flaky([])

        async def run() -> None:
            token.cancel()
            await with_retry(op, FAST, token=token)

        with pytest.raises(OperationCancelledError):
            asyncio.run(run())
        assert op.calls == 0

    def test_cancel_interrupts_in_flight_call(self):
        finished = False

        async def long_call() -> str:
            nonlocal finished
            await asyncio.sleep(5)
            finished = True
            return "late"

        async def run() -> None:
            token = CancellationToken()
            asyncio.get_running_loop().call_later(0.02, token.cancel)
            await with_retry(long_call, FAST.model_copy(update={"attempt_timeout": 10}), token=token)

        with pytest.raises(OperationCancelledError):
            asyncio.run(run())
        assert finished is False
