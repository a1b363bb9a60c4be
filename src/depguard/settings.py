from __future__ import annotations

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from depguard.circuit_breaker.breaker import CircuitBreakerConfig
from depguard.logging import configure_logging, get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class CircuitBreakerSettings(BaseSettings):
    """Environment-driven defaults for breakers guarding remote dependencies.

    Read from ``DEPGUARD_BREAKER_*`` variables. Subclass with a different
    ``model_config`` (see ``prefixed_settings_config``) to give one dependency
    its own prefix.
    """

    model_config = prefixed_settings_config("DEPGUARD_BREAKER_")

    failure_threshold: int = 5
    success_threshold: int = 2
    half_open_timeout_ms: int = 30_000
    log_level: str = "INFO"

    @field_validator(
        "failure_threshold",
        "success_threshold",
        "half_open_timeout_ms",
    )
    @classmethod
    def _validate_positive(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        get_log_level_value(value)
        return value.strip().upper()

    def configure_logging(self, *, json_output: bool | None = None) -> None:
        """Configure structlog output for breaker events at ``log_level``."""
        configure_logging(log_level=self.log_level, json_output=json_output)

    def to_config(self) -> CircuitBreakerConfig:
        """Build a breaker configuration from these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            half_open_timeout_ms=self.half_open_timeout_ms,
        )
