from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog

import depguard.circuit_breaker.breaker as breaker_mod
from tests.depguard.support.runtime_fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze breaker time and let the test advance it explicitly."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock


@pytest.fixture
def reset_structlog() -> Iterator[None]:
    """Restore structlog defaults after a test reconfigures it."""
    yield
    structlog.reset_defaults()
