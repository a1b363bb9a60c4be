"""Observability hooks for circuit breakers."""

from typing import Protocol

from depguard.circuit_breaker.state import CircuitState
from depguard.logging import AnyLogger, get_logger, log_info, log_warning


class StateChangeCallback(Protocol):
    """Callback invoked synchronously after every breaker transition.

    Notes:
        Callbacks run on the thread that triggered the transition. Exceptions
        they raise are logged by the breaker and never reach the caller.
    """

    def __call__(self, new_state: CircuitState, old_state: CircuitState) -> None:
        """Handle a circuit state transition."""


class StateChangeLogger:
    """Listener that logs transitions of one named breaker."""

    def __init__(self, name: str, *, logger: AnyLogger | None = None) -> None:
        self.name = name
        self._logger = get_logger(__name__) if logger is None else logger

    def __call__(self, new_state: CircuitState, old_state: CircuitState) -> None:
        if new_state == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker_opened",
                breaker=self.name,
                old_state=old_state,
            )
            return
        log_info(
            self._logger,
            "circuit_breaker_transition",
            breaker=self.name,
            old_state=old_state,
            new_state=new_state,
        )
