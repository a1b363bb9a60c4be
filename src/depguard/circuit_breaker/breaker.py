"""Core circuit breaker implementation."""

import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ParamSpec, TypeVar

from depguard.circuit_breaker.exceptions import CircuitBreakerError
from depguard.circuit_breaker.listeners import StateChangeCallback
from depguard.circuit_breaker.state import BreakerSnapshot, CircuitState
from depguard.logging import AnyLogger, get_logger, log_exception, log_warning

T = TypeVar("T")
P = ParamSpec("P")

_logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        success_threshold: Consecutive successes while ``HALF_OPEN`` before
            closing.
        half_open_timeout_ms: Milliseconds to stay ``OPEN`` before a recovery
            trial call is allowed.
        expected_exceptions: Exceptions that ``execute`` records as failures.
        excluded_exceptions: Exceptions that ``execute`` passes through without
            recording anything.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    half_open_timeout_ms: int = 30_000
    expected_exceptions: tuple[type[BaseException], ...] = (Exception,)
    excluded_exceptions: tuple[type[BaseException], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.half_open_timeout_ms < 1:
            raise ValueError("half_open_timeout_ms must be >= 1")


class CircuitBreaker:
    """Stateful gate in front of one unreliable dependency.

    The ``OPEN`` to ``HALF_OPEN`` transition is evaluated lazily: nothing
    happens until ``is_call_permitted`` (directly or through ``execute``) is
    called after the half-open timeout has elapsed. A breaker that is never
    queried again stays ``OPEN``.

    Dwell time is measured against the wall clock (UTC). A backward clock
    step keeps the breaker ``OPEN`` for longer than ``half_open_timeout_ms``.

    Methods are not thread-safe. Hosts calling one breaker from several
    threads must serialize access themselves.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        name: str = "default",
        logger: AnyLogger | None = None,
    ) -> None:
        """Build a circuit breaker in the ``CLOSED`` state.

        Args:
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            name: Breaker name used in logs and rejection errors.
            logger: Structured or stdlib logger. Defaults to this module's
                structlog logger.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._logger = _logger if logger is None else logger
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_failure: datetime | None = None
        self._last_success: datetime | None = None
        self._opened_at: datetime | None = None
        self._listeners: dict[int, StateChangeCallback] = {}
        self._listener_ids = itertools.count()

    @property
    def state(self) -> CircuitState:
        """Current state, read without evaluating the half-open timeout."""
        return self._state

    def get_status(self) -> BreakerSnapshot:
        """Return a snapshot of the current status without mutating anything."""
        return BreakerSnapshot(
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            consecutive_successes=self._consecutive_successes,
            last_failure=self._last_failure,
            last_success=self._last_success,
        )

    def is_call_permitted(self) -> bool:
        """Return whether a call may go through right now.

        While ``OPEN`` and once the half-open timeout has elapsed, this moves
        the breaker to ``HALF_OPEN`` and returns ``True``.
        """
        if self._state != CircuitState.OPEN:
            return True

        if not self._dwell_elapsed(_utcnow()):
            return False
        self._transition_to(CircuitState.HALF_OPEN)
        return True

    def on_error(self) -> None:
        """Record a failed call."""
        now = _utcnow()
        self._consecutive_failures += 1
        self._consecutive_successes = 0
        self._last_failure = now

        if self._state == CircuitState.HALF_OPEN or (
            self._state == CircuitState.CLOSED
            and self._consecutive_failures >= self.config.failure_threshold
        ):
            self._opened_at = now
            self._transition_to(CircuitState.OPEN)

    def on_success(self) -> None:
        """Record a successful call."""
        self._consecutive_successes += 1
        self._consecutive_failures = 0
        self._last_success = _utcnow()

        if (
            self._state == CircuitState.HALF_OPEN
            and self._consecutive_successes >= self.config.success_threshold
        ):
            self._transition_to(CircuitState.CLOSED)

    def reset(self) -> None:
        """Return to ``CLOSED`` with zeroed counters, keeping listeners.

        ``last_failure`` and ``last_success`` are kept for observability.
        """
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._transition_to(CircuitState.CLOSED)

    def on_state_change(self, callback: StateChangeCallback) -> Callable[[], None]:
        """Register ``callback(new_state, old_state)`` for every transition.

        Returns:
            A function removing exactly this registration. Calling it more
            than once is a no-op.
        """
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = callback

        def _unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return _unsubscribe

    async def execute(
        self,
        operation: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            operation: Async callable talking to the protected dependency.
            *args: Positional arguments forwarded to ``operation``.
            **kwargs: Keyword arguments forwarded to ``operation``.

        Returns:
            The result of ``operation`` when permitted and successful.

        Raises:
            CircuitBreakerError: When the call is rejected. ``operation`` is
                not invoked.
            Exception: The original exception raised by ``operation``.
        """
        if not self.is_call_permitted():
            retry_after = self._retry_after(_utcnow())
            log_warning(
                self._logger,
                "circuit_breaker_call_rejected",
                breaker=self.name,
                state=self._state,
                retry_after=retry_after,
            )
            raise CircuitBreakerError(
                f"circuit_open: {self.name} retry_after={retry_after:g}s",
                self.get_status(),
                breaker_name=self.name,
                retry_after=retry_after,
            )

        try:
            result = await operation(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions:
            self.on_error()
            raise
        self.on_success()
        return result

    def _dwell_elapsed(self, now: datetime) -> bool:
        if self._opened_at is None:
            return False
        timeout = timedelta(milliseconds=self.config.half_open_timeout_ms)
        return now - self._opened_at >= timeout

    def _retry_after(self, now: datetime) -> float:
        opened_at = now if self._opened_at is None else self._opened_at
        elapsed = (now - opened_at).total_seconds()
        return max(self.config.half_open_timeout_ms / 1000 - elapsed, 0.0)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        if new_state == CircuitState.HALF_OPEN:
            self._consecutive_failures = 0
            self._consecutive_successes = 0
        elif new_state == CircuitState.CLOSED:
            self._opened_at = None

        for callback in tuple(self._listeners.values()):
            try:
                callback(new_state, old_state)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker_listener_failed",
                    breaker=self.name,
                    old_state=old_state,
                    new_state=new_state,
                )
