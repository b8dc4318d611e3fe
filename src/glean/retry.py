"""Retry wrapper for network-facing coroutines.

Every remote call (document fetch, text generation) goes through
:func:`with_retry`: exponential backoff with jitter, a bounded number of
attempts, a timeout per attempt and a deadline for the whole operation.
A :class:`CancellationToken` lets a caller abandon the run; the in-flight
attempt is cancelled so no more remote quota is spent.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from pydantic import BaseModel

from glean.errors import (
    OperationCancelledError,
    OperationTimeoutError,
    RetryExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Backoff and timeout settings ([retry] section)."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.25
    attempt_timeout: float = 30.0
    overall_timeout: float = 90.0

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        base = self.initial_delay * self.backoff_factor ** (attempt - 1)
        spread = (rng or random).uniform(1 - self.jitter, 1 + self.jitter)
        return min(base * spread, self.max_delay)


class CancellationToken:
    """Cooperative cancellation flag shared by all calls of one run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled by caller")


class _AttemptTimeout(Exception):
    pass


def is_retryable(exc: BaseException) -> bool:
    """Decide whether a failed attempt is worth repeating."""
    if isinstance(exc, (_AttemptTimeout, httpx.TransportError)):
        return True
    return bool(getattr(exc, "retryable", False))


async def _run_attempt(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    token: CancellationToken | None,
) -> T:
    task: asyncio.Future[T] = asyncio.ensure_future(operation())
    waiters: set[asyncio.Future[object]] = {task}  # type: ignore[arg-type]
    cancel_waiter: asyncio.Future[None] | None = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)  # type: ignore[arg-type]

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    if token is not None and token.cancelled:
        raise OperationCancelledError("Operation cancelled by caller")
    raise _AttemptTimeout(f"attempt timed out after {timeout:.1f}s")


async def _sleep(delay: float, token: CancellationToken | None) -> None:
    if token is None:
        await asyncio.sleep(delay)
        return
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(token.wait(), timeout=delay)
    token.raise_if_cancelled()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    name: str = "operation",
    token: CancellationToken | None = None,
    retryable: Callable[[BaseException], bool] = is_retryable,
) -> T:
    """Run ``operation`` with retries.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Backoff and timeout settings.
        name: Label used in logs and error messages.
        token: Optional cancellation token.
        retryable: Predicate deciding whether an exception is transient.
            Non-retryable exceptions propagate immediately.

    Returns:
        The operation's result.

    Raises:
        RetryExhaustedError: All attempts failed with transient errors.
        OperationTimeoutError: The overall deadline passed.
        OperationCancelledError: The token was cancelled.
    """
    policy = policy or RetryPolicy()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + policy.overall_timeout
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if token is not None:
            token.raise_if_cancelled()
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise OperationTimeoutError(
                f"{name} exceeded {policy.overall_timeout:.0f}s overall timeout"
            )

        try:
            return await _run_attempt(
                operation, min(policy.attempt_timeout, remaining), token
            )
        except (OperationCancelledError, asyncio.CancelledError):
            raise
        except Exception as exc:
            if not retryable(exc):
                raise
            last_error = exc
            logger.warning(
                "%s attempt %d/%d failed: %s", name, attempt, policy.max_attempts, exc
            )

        if attempt == policy.max_attempts:
            break

        delay = policy.delay_for(attempt)
        retry_after = getattr(last_error, "retry_after", None)
        if isinstance(retry_after, (int, float)):
            delay = max(delay, float(retry_after))
        remaining = deadline - loop.time()
        if delay >= remaining:
            raise OperationTimeoutError(
                f"{name} exceeded {policy.overall_timeout:.0f}s overall timeout"
            ) from last_error
        await _sleep(delay, token)

    assert last_error is not None
    raise RetryExhaustedError(name, policy.max_attempts, last_error) from last_error
