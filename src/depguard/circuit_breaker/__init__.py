"""In-process circuit breaker for unreliable remote dependencies.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - One ``CircuitBreaker`` guards one dependency. There is no shared global
    breaker; callers hold and pass their instance explicitly.
  - ``OPEN`` to ``HALF_OPEN`` is lazy: there are no timers. The breaker only
    re-evaluates when ``is_call_permitted`` or ``execute`` is called.
  - A single failure while ``HALF_OPEN`` reopens the circuit.
  - Failures of the protected operation are re-raised unchanged. The only
    error the breaker adds is ``CircuitBreakerError`` on rejection.
  - State-change listeners are isolated from each other and from the caller:
    an exception raised by one is logged and discarded.
"""

from depguard.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from depguard.circuit_breaker.exceptions import CircuitBreakerError
from depguard.circuit_breaker.listeners import StateChangeCallback, StateChangeLogger
from depguard.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "StateChangeCallback",
    "StateChangeLogger",
]
