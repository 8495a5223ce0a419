from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


Severity = Literal["TRACE", "DEBUG", "INFO", "WARN", "ERROR"]


class LogLevels(BaseModel):
    """Per-category log severity for handled failures."""

    model_config = ConfigDict(frozen=True)

    business: Severity = "WARN"
    system: Severity = "ERROR"
    validation: Severity = "WARN"

    @field_validator("business", "system", "validation", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().upper()
            # Accept the stdlib spelling too.
            if value == "WARNING":
                return "WARN"
        return value


class Settings(BaseSettings):
    """Disclosure policy loaded once from environment variables.

    Nested values use a double underscore, e.g.
    ``EXCEPTION_HANDLER_LOG_LEVEL__BUSINESS=INFO``.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXCEPTION_HANDLER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    # Master switch: when off, no handlers are registered.
    enabled: bool = True
    enable_logging: bool = True

    # Must stay off in production; traces leak internals.
    include_stack_trace: bool = False
    max_stack_trace_lines: int = Field(default=50, ge=0)
    include_field_errors: bool = True

    log_level: LogLevels = Field(default_factory=LogLevels)

    # Example application only.
    jwt_secret: str = "change-me-to-a-32-byte-or-longer-secret"
    jwt_algorithm: str = "HS256"
    request_timeout_s: float | None = Field(default=None, gt=0)
    upstream_url: str = "http://127.0.0.1:8081/status"


@lru_cache
def get_settings() -> Settings:
    return Settings()
