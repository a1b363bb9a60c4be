"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time copy of breaker status for callers, logs and errors.

    Attributes:
        state: Breaker state when the snapshot was taken.
        consecutive_failures: Failures recorded since the last success.
        consecutive_successes: Successes recorded since the last failure.
        last_failure: Timestamp of the most recent failure, if any.
        last_success: Timestamp of the most recent success, if any.
    """

    state: CircuitState
    consecutive_failures: int
    consecutive_successes: int
    last_failure: datetime | None
    last_success: datetime | None

    @property
    def is_healthy(self) -> bool:
        """Return whether the breaker is letting calls through normally."""
        return self.state == CircuitState.CLOSED

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly view with ISO-8601 timestamps."""
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "last_failure": (
                None if self.last_failure is None else self.last_failure.isoformat()
            ),
            "last_success": (
                None if self.last_success is None else self.last_success.isoformat()
            ),
            "is_healthy": self.is_healthy,
        }
