from __future__ import annotations

import datetime as dt
import traceback
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.json_schema import SkipJsonSchema
from pydantic_core import to_jsonable_python

from errorkit.core.classifier import ClassifiedFailure, FailureKind, FieldError, RequestContext
from errorkit.core.settings import Settings


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: dt.datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


class ErrorResponse(BaseModel):
    """Wire envelope. ``details`` and ``fieldErrors`` are omitted when absent.

    The JSON schema describes the wire form: ``timestamp`` is a
    ``yyyy-MM-dd HH:mm:ss`` string and the optional keys are never null.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: int
    message: str
    details: str | SkipJsonSchema[None] = None
    path: str
    timestamp: dt.datetime = Field(json_schema_extra={"examples": ["2026-01-30 12:05:09"]})
    field_errors: tuple[FieldError, ...] | SkipJsonSchema[None] = Field(
        default=None, alias="fieldErrors"
    )

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: dt.datetime) -> str:
        return format_timestamp(value)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        payload["path"] = self.path
        payload["timestamp"] = format_timestamp(self.timestamp)
        if self.field_errors is not None:
            payload["fieldErrors"] = [field_error_payload(fe) for fe in self.field_errors]
        return payload


def field_error_payload(error: FieldError) -> dict[str, Any]:
    item: dict[str, Any] = {"field": error.field}
    if error.rejected_value is not None:
        item["rejectedValue"] = to_jsonable_python(error.rejected_value, serialize_unknown=True)
    item["message"] = error.message or ""
    return item


_KIND_STATUS: dict[FailureKind, int] = {
    # Domain failures are expected outcomes: code != 0 inside a 200 envelope,
    # whatever the category of their entry.
    FailureKind.DOMAIN: 200,
    FailureKind.FIELD_VALIDATION: 400,
    FailureKind.CONSTRAINT_VALIDATION: 400,
    FailureKind.METHOD_NOT_SUPPORTED: 405,
    FailureKind.MEDIA_TYPE_NOT_SUPPORTED: 415,
    FailureKind.MISSING_PARAMETER: 400,
    FailureKind.TYPE_MISMATCH: 400,
    FailureKind.MESSAGE_NOT_READABLE: 400,
    FailureKind.MESSAGE_NOT_WRITABLE: 400,
    FailureKind.MISSING_PART: 400,
    FailureKind.PAYLOAD_TOO_LARGE: 413,
    FailureKind.BAD_REQUEST: 400,
    FailureKind.UNAUTHENTICATED: 401,
    FailureKind.ACCESS_DENIED: 403,
    FailureKind.NOT_FOUND: 404,
    FailureKind.TIMEOUT: 408,
    FailureKind.UPSTREAM_TIMEOUT: 504,
    FailureKind.UPSTREAM_UNAVAILABLE: 503,
    FailureKind.UPSTREAM_ERROR: 502,
    FailureKind.UNCLASSIFIED: 500,
}


def status_for(classified: ClassifiedFailure) -> int:
    if classified.status_hint is not None:
        return classified.status_hint
    return _KIND_STATUS[classified.kind]


def qualified_name(exc_type: type[BaseException]) -> str:
    if exc_type.__module__ == "builtins":
        return exc_type.__qualname__
    return f"{exc_type.__module__}.{exc_type.__qualname__}"


def format_stack_trace(exc: BaseException, max_lines: int) -> str:
    """Render ``Type: message`` plus at most ``max_lines`` frames, innermost first."""

    frames = list(reversed(traceback.extract_tb(exc.__traceback__)))
    lines = [f"{qualified_name(type(exc))}: {exc}"]
    for frame in frames[:max_lines]:
        lines.append(f"\tat {frame.name} ({frame.filename}:{frame.lineno})")
    if len(frames) > max_lines:
        lines.append(f"\t... {len(frames) - max_lines} more")
    return "\n".join(lines)


def build(
    classified: ClassifiedFailure,
    context: RequestContext,
    policy: Settings,
    *,
    clock: Callable[[], dt.datetime] = dt.datetime.now,
) -> tuple[ErrorResponse, int]:
    """Assemble the envelope and the HTTP status for a classified failure."""

    details = None
    if policy.include_stack_trace and classified.exception is not None:
        details = format_stack_trace(classified.exception, policy.max_stack_trace_lines)

    field_errors = None
    if policy.include_field_errors and classified.field_errors:
        field_errors = classified.field_errors

    response = ErrorResponse(
        code=classified.response_code,
        message=classified.message or "",
        details=details,
        path=context.path,
        timestamp=clock(),
        field_errors=field_errors,
    )
    return response, status_for(classified)
