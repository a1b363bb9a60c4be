"""Retry loops that cooperate with a circuit breaker.

The breaker never retries on its own. These helpers run the retry loop
outside it: every attempt goes through ``CircuitBreaker.execute`` so the
breaker is re-checked before each try, and a rejection ends the loop.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ParamSpec, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential_jitter,
)
from tenacity.retry import retry_base

from depguard.circuit_breaker import CircuitBreaker, CircuitBreakerError

T = TypeVar("T")
P = ParamSpec("P")


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry attempt count and backoff boundaries."""

    attempts: int | None
    min_seconds: float
    max_seconds: float

    def __post_init__(self) -> None:
        if self.attempts is not None and self.attempts < 1:
            raise ValueError("attempts must be >= 1 when provided")
        if self.min_seconds < 0:
            raise ValueError("min_seconds must be >= 0")
        if self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")
        if self.max_seconds < self.min_seconds:
            raise ValueError("max_seconds must be >= min_seconds")


def retry_unless_circuit_open(
    *exception_types: type[BaseException],
) -> retry_base:
    """Retry on ``exception_types`` but never on a breaker rejection."""
    types = exception_types or (Exception,)
    return retry_if_exception_type(types) & retry_if_not_exception_type(
        CircuitBreakerError
    )


def build_exponential_jitter_retrying(
    *,
    retry: retry_base,
    policy: RetryBackoffPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with exponential jitter backoff."""
    stop = (
        stop_never if policy.attempts is None else stop_after_attempt(policy.attempts)
    )
    options: dict[str, Any] = {
        "retry": retry,
        "wait": wait_exponential_jitter(
            initial=policy.min_seconds,
            max=policy.max_seconds,
        ),
        "stop": stop,
        "reraise": reraise,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)


async def execute_with_retry(
    breaker: CircuitBreaker,
    operation: Callable[P, Awaitable[T]],
    *args: P.args,
    policy: RetryBackoffPolicy,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Run ``operation`` through ``breaker`` with retries between attempts.

    ``args`` and ``kwargs`` are forwarded to ``operation`` on every attempt.

    Raises:
        CircuitBreakerError: As soon as the breaker rejects an attempt.
        Exception: The last failure of ``operation`` once attempts run out,
            or any failure not listed in ``retry_on``.
    """
    retrying = build_exponential_jitter_retrying(
        retry=retry_unless_circuit_open(*retry_on),
        policy=policy,
        sleep=sleep,
    )
    async for attempt in retrying:
        with attempt:
            return await breaker.execute(operation, *args, **kwargs)
    raise AssertionError("unreachable: AsyncRetrying exited without result")
