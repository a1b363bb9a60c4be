from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import Protocol, cast

import pytest
import structlog

from depguard.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    StateChangeLogger,
)
from depguard.logging import (
    _render_enum_values,
    configure_logging,
    get_log_level_value,
    log_exception,
    log_info,
    log_warning,
)
from depguard.settings import CircuitBreakerSettings
from tests.depguard.support.runtime_fakes import FakeLogger


def _json_lines(capsys: pytest.CaptureFixture[str]) -> list[dict[str, object]]:
    return [json.loads(line) for line in capsys.readouterr().err.splitlines()]


def _trip_with_state_logger(name: str) -> CircuitBreaker:
    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1), name=name)
    breaker.on_state_change(StateChangeLogger(name))
    breaker.on_error()
    return breaker


def test_get_log_level_value_maps_known_levels() -> None:
    assert get_log_level_value("debug") == logging.DEBUG
    assert get_log_level_value(" warning ") == logging.WARNING
    assert get_log_level_value("CRITICAL") == logging.CRITICAL


def test_get_log_level_value_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="log_level must be one of"):
        get_log_level_value("TRACE")


def test_render_enum_values_replaces_states_with_plain_names() -> None:
    event_dict = {"event": "x", "state": CircuitState.HALF_OPEN, "attempt": 2}

    rendered = _render_enum_values(None, "info", event_dict)

    assert rendered == {"event": "x", "state": "HALF_OPEN", "attempt": 2}
    assert type(rendered["state"]) is str


def test_breaker_transition_is_rendered_as_json(
    capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    configure_logging(log_level="INFO", json_output=True)

    _trip_with_state_logger("vault")
    records = _json_lines(capsys)

    assert len(records) == 1
    record = records[0]
    assert record["event"] == "circuit_breaker_opened"
    assert record["level"] == "warning"
    assert record["breaker"] == "vault"
    assert record["old_state"] == "CLOSED"
    assert record["logger"] == "depguard.circuit_breaker.listeners"
    assert "timestamp" in record


def test_configure_logging_filters_below_level(
    capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    configure_logging(log_level="ERROR", json_output=True)

    _trip_with_state_logger("vault")

    assert capsys.readouterr().err == ""


def test_listener_failure_is_logged_with_traceback(
    capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    configure_logging(log_level="INFO", json_output=True)
    breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1), name="vault")

    def _explode(new_state: CircuitState, old_state: CircuitState) -> None:
        raise RuntimeError("listener bug")

    breaker.on_state_change(_explode)
    breaker.on_error()
    records = _json_lines(capsys)

    assert [record["event"] for record in records] == [
        "circuit_breaker_listener_failed"
    ]
    assert records[0]["level"] == "error"
    assert records[0]["new_state"] == "OPEN"
    assert "RuntimeError: listener bug" in cast(str, records[0]["exception"])


def test_settings_configure_logging_uses_their_level(
    capsys: pytest.CaptureFixture[str], reset_structlog: None
) -> None:
    CircuitBreakerSettings(log_level="warning").configure_logging(json_output=True)

    breaker = _trip_with_state_logger("sessions")
    breaker.reset()
    records = _json_lines(capsys)

    assert [record["event"] for record in records] == ["circuit_breaker_opened"]


@pytest.mark.parametrize(
    ("isatty", "renderer_type"),
    [
        (True, structlog.dev.ConsoleRenderer),
        (False, structlog.processors.JSONRenderer),
    ],
)
def test_configure_logging_picks_renderer_from_stderr(
    monkeypatch: pytest.MonkeyPatch,
    reset_structlog: None,
    isatty: bool,
    renderer_type: type,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: isatty, raising=False)

    configure_logging(log_level="INFO")

    assert isinstance(structlog.get_config()["processors"][-1], renderer_type)


class _CaptureHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class _RecordWithBreakerFields(Protocol):
    breaker: str
    new_state: str


def _capturing_stdlib_logger(name: str) -> tuple[logging.Logger, _CaptureHandler]:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(logging.INFO)
    handler = _CaptureHandler()
    logger.addHandler(handler)
    return logger, handler


@pytest.mark.parametrize(
    ("log_fn", "level"),
    [
        (log_info, "info"),
        (log_warning, "warning"),
        (log_exception, "exception"),
    ],
)
def test_structured_log_helpers_forward_keyword_fields(
    log_fn: Callable[..., None],
    level: str,
) -> None:
    logger = FakeLogger()

    log_fn(logger, "circuit_breaker.event", breaker="vault", attempt=3)

    assert logger.calls == [
        (level, "circuit_breaker.event", {"breaker": "vault", "attempt": 3})
    ]


def test_breaker_logs_listener_failure_through_stdlib_logger() -> None:
    logger, handler = _capturing_stdlib_logger("tests.depguard.logging.breaker")
    breaker = CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=1), name="vault", logger=logger
    )

    def _explode(new_state: CircuitState, old_state: CircuitState) -> None:
        raise RuntimeError("listener bug")

    breaker.on_state_change(_explode)
    breaker.on_error()

    assert len(handler.records) == 1
    record = handler.records[0]
    typed_record = cast(_RecordWithBreakerFields, record)
    assert record.getMessage() == "circuit_breaker_listener_failed"
    assert record.levelno == logging.ERROR
    assert typed_record.breaker == "vault"
    assert typed_record.new_state == "OPEN"
    assert record.exc_info is not None
    assert isinstance(record.exc_info[1], RuntimeError)
