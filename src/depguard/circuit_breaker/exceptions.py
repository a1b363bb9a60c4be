"""Circuit breaker exceptions.

The breaker raises exactly one error of its own: ``CircuitBreakerError`` when
a call is rejected. Failures of the protected operation are never wrapped.
"""

from typing import ClassVar

from depguard.circuit_breaker.state import BreakerSnapshot


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is not permitting calls.

    Attributes:
        error_type: Fixed identifier for this error kind.
        message: Human-readable rejection message.
        status: Breaker snapshot captured at rejection time.
        breaker_name: Name of the breaker rejecting the call, if known.
        retry_after: Seconds until a recovery trial call may be attempted, if known.
    """

    error_type: ClassVar[str] = "CircuitBreakerError"

    def __init__(
        self,
        message: str,
        status: BreakerSnapshot,
        *,
        breaker_name: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        """Initialize a rejection payload.

        Args:
            message: Rejection message.
            status: Snapshot of the breaker when the call was rejected.
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next trial call is allowed.
        """
        self.message = message
        self.status = status
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(message)
