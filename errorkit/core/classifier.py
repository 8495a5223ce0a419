"""Map any raised failure to exactly one taxonomy entry.

Rules are tried in a fixed precedence order and the first match wins:
domain, field validation, constraint validation, request shape,
authorization, not found, timeout, external service, then the catch-all.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable, Iterable, Sequence
from http import HTTPStatus
from typing import Any

import httpx
import jwt
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from errorkit.core.codes import ErrorCode, TaxonomyEntry
from errorkit.core.errors import (
    AccessDeniedError,
    BaseAppError,
    ConstraintViolationError,
    FieldValidationError,
    MediaTypeNotSupportedError,
    MessageNotReadableError,
    MessageNotWritableError,
    MethodNotSupportedError,
    MissingParameterError,
    MissingRequestPartError,
    NoRouteFoundError,
    PayloadTooLargeError,
    RequestShapeError,
    RequestTimeoutError,
    TypeMismatchError,
)


# Locations FastAPI puts first in a validation error ``loc``.
REQUEST_LOCATIONS = ("body", "query", "path", "header", "cookie")


class FailureKind(str, enum.Enum):
    DOMAIN = "domain"
    FIELD_VALIDATION = "field_validation"
    CONSTRAINT_VALIDATION = "constraint_validation"
    METHOD_NOT_SUPPORTED = "method_not_supported"
    MEDIA_TYPE_NOT_SUPPORTED = "media_type_not_supported"
    MISSING_PARAMETER = "missing_parameter"
    TYPE_MISMATCH = "type_mismatch"
    MESSAGE_NOT_READABLE = "message_not_readable"
    MESSAGE_NOT_WRITABLE = "message_not_writable"
    MISSING_PART = "missing_part"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    BAD_REQUEST = "bad_request"
    UNAUTHENTICATED = "unauthenticated"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UPSTREAM_ERROR = "upstream_error"
    UNCLASSIFIED = "unclassified"


class FieldError(BaseModel):
    """A single violation tied to a named field or to the whole object."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    field: str
    rejected_value: Any = Field(default=None, alias="rejectedValue")
    message: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class RequestContext:
    method: str = ""
    path: str = ""
    trace_id: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ClassifiedFailure:
    entry: TaxonomyEntry
    message: str
    kind: FailureKind
    is_expected: bool
    field_errors: tuple[FieldError, ...] = ()
    raw_diagnostic: str | None = None
    exception: BaseException | None = None
    # Instance-specific code chosen by the raiser; falls back to entry.code.
    code: int | None = None
    # Only set when the failure itself dictates the HTTP status.
    status_hint: int | None = None

    @property
    def response_code(self) -> int:
        return self.code if self.code is not None else self.entry.code


Rule = Callable[[BaseException, RequestContext], "ClassifiedFailure | None"]


def _diagnostic(exc: BaseException) -> str | None:
    text = str(exc)
    return text or None


def _expected(
    exc: BaseException,
    error_code: ErrorCode,
    kind: FailureKind,
    message: str | None = None,
    *,
    field_errors: Iterable[FieldError] = (),
    status_hint: int | None = None,
) -> ClassifiedFailure:
    return ClassifiedFailure(
        entry=error_code.value,
        message=message if message is not None else error_code.default_message,
        kind=kind,
        is_expected=True,
        field_errors=tuple(field_errors),
        raw_diagnostic=_diagnostic(exc),
        exception=exc,
        status_hint=status_hint,
    )


def interpolate(template: str, args: Sequence[Any]) -> str:
    """Fill ``{0}``-style placeholders; templates without any stay unchanged."""

    if not args or "{" not in template:
        return template
    try:
        return template.format(*args)
    except (IndexError, KeyError, ValueError):
        return template


def _http_detail(exc: StarletteHTTPException) -> str | None:
    # Starlette fills detail with the status phrase when none was given.
    detail = exc.detail
    if not isinstance(detail, str) or not detail:
        return None
    try:
        if detail == HTTPStatus(exc.status_code).phrase:
            return None
    except ValueError:
        pass
    return detail


# --- rules, in precedence order ---------------------------------------------


def _classify_domain(exc: BaseException, ctx: RequestContext) -> ClassifiedFailure | None:
    if not isinstance(exc, BaseAppError):
        return None
    entry = exc.error_code.value
    if exc.message is not None:
        message = exc.message
    else:
        message = interpolate(entry.default_message, exc.message_args)
    return ClassifiedFailure(
        entry=entry,
        message=message,
        kind=FailureKind.DOMAIN,
        is_expected=True,
        raw_diagnostic=_diagnostic(exc),
        exception=exc,
        code=exc.code,
    )


def field_errors_from_pydantic(
    errors: Iterable[dict[str, Any]],
    *,
    object_name: str,
    strip_location: bool = False,
) -> list[FieldError]:
    """Flatten pydantic-style errors: field-level first, then object-level.

    With ``strip_location`` the leading FastAPI location (``body``, ``query``
    and so on) is dropped from field names and names object-level errors.
    """

    field_level: list[FieldError] = []
    object_level: list[FieldError] = []
    for err in errors:
        loc = tuple(err.get("loc") or ())
        source = object_name
        if strip_location and loc and loc[0] in REQUEST_LOCATIONS:
            source, loc = str(loc[0]), loc[1:]
        message = err.get("msg") or ""
        if not loc:
            object_level.append(FieldError(field=source, message=message))
            continue
        # For "missing" the input is the enclosing object, not the field value.
        rejected = None if err.get("type") == "missing" else err.get("input")
        field_level.append(
            FieldError(
                field=".".join(str(part) for part in loc),
                rejected_value=rejected,
                message=message,
            )
        )
    return field_level + object_level


def _classify_field_validation(
    exc: BaseException, ctx: RequestContext
) -> ClassifiedFailure | None:
    if isinstance(exc, FieldValidationError):
        errors = [
            FieldError(field=e.name, rejected_value=e.rejected_value, message=e.message or "")
            for e in exc.field_errors
        ]
        errors += [FieldError(field=e.name, message=e.message or "") for e in exc.global_errors]
    elif isinstance(exc, RequestValidationError):
        errors = field_errors_from_pydantic(
            exc.errors(), object_name="request", strip_location=True
        )
    elif isinstance(exc, PydanticValidationError):
        errors = field_errors_from_pydantic(exc.errors(), object_name=exc.title)
    else:
        return None
    return _expected(
        exc, ErrorCode.VALIDATION_ERROR, FailureKind.FIELD_VALIDATION, field_errors=errors
    )


def _classify_constraint_validation(
    exc: BaseException, ctx: RequestContext
) -> ClassifiedFailure | None:
    if not isinstance(exc, ConstraintViolationError):
        return None
    errors = [
        FieldError(
            field=v.property_path,
            rejected_value=v.invalid_value,
            message=v.message or "",
        )
        for v in exc.violations
    ]
    return _expected(
        exc,
        ErrorCode.VALIDATION_ERROR,
        FailureKind.CONSTRAINT_VALIDATION,
        field_errors=errors,
    )


_SHAPE_CODES: dict[type[RequestShapeError], tuple[ErrorCode, FailureKind]] = {
    MethodNotSupportedError: (
        ErrorCode.REQUEST_METHOD_NOT_SUPPORTED,
        FailureKind.METHOD_NOT_SUPPORTED,
    ),
    MediaTypeNotSupportedError: (
        ErrorCode.MEDIA_TYPE_NOT_SUPPORTED,
        FailureKind.MEDIA_TYPE_NOT_SUPPORTED,
    ),
    MissingParameterError: (ErrorCode.MISSING_REQUEST_PARAMETER, FailureKind.MISSING_PARAMETER),
    TypeMismatchError: (ErrorCode.TYPE_MISMATCH, FailureKind.TYPE_MISMATCH),
    MessageNotReadableError: (
        ErrorCode.HTTP_MESSAGE_NOT_READABLE,
        FailureKind.MESSAGE_NOT_READABLE,
    ),
    MessageNotWritableError: (
        ErrorCode.HTTP_MESSAGE_NOT_READABLE,
        FailureKind.MESSAGE_NOT_WRITABLE,
    ),
    MissingRequestPartError: (ErrorCode.MISSING_SERVLET_REQUEST_PART, FailureKind.MISSING_PART),
    PayloadTooLargeError: (ErrorCode.MAX_UPLOAD_SIZE_EXCEEDED, FailureKind.PAYLOAD_TOO_LARGE),
}

# Messages that name the offending element; the rest use the entry default.
_NAMING_SHAPES = (
    MethodNotSupportedError,
    MediaTypeNotSupportedError,
    MissingParameterError,
    TypeMismatchError,
    MissingRequestPartError,
)


def _classify_request_shape(
    exc: BaseException, ctx: RequestContext
) -> ClassifiedFailure | None:
    if isinstance(exc, RequestShapeError):
        for shape_type, (error_code, kind) in _SHAPE_CODES.items():
            if isinstance(exc, shape_type):
                message = exc.describe() if isinstance(exc, _NAMING_SHAPES) else None
                return _expected(exc, error_code, kind, message)
        return _expected(exc, ErrorCode.PARAM_ERROR, FailureKind.BAD_REQUEST, exc.describe())

    if not isinstance(exc, StarletteHTTPException):
        return None
    status = exc.status_code
    if status == 405:
        allow = (exc.headers or {}).get("Allow", "")
        # Starlette builds Allow from a set; sort for a stable message.
        shape = MethodNotSupportedError(
            ctx.method, sorted(m.strip() for m in allow.split(",") if m.strip())
        )
        return _expected(
            exc,
            ErrorCode.REQUEST_METHOD_NOT_SUPPORTED,
            FailureKind.METHOD_NOT_SUPPORTED,
            shape.describe(),
        )
    if status == 413:
        return _expected(
            exc,
            ErrorCode.MAX_UPLOAD_SIZE_EXCEEDED,
            FailureKind.PAYLOAD_TOO_LARGE,
            _http_detail(exc),
        )
    if status == 415:
        return _expected(
            exc,
            ErrorCode.MEDIA_TYPE_NOT_SUPPORTED,
            FailureKind.MEDIA_TYPE_NOT_SUPPORTED,
            _http_detail(exc),
        )
    if 400 <= status < 500 and status not in (401, 403, 404, 408):
        return _expected(
            exc,
            ErrorCode.PARAM_ERROR,
            FailureKind.BAD_REQUEST,
            _http_detail(exc),
            status_hint=status,
        )
    return None


def _classify_authorization(
    exc: BaseException, ctx: RequestContext
) -> ClassifiedFailure | None:
    if isinstance(exc, jwt.ExpiredSignatureError):
        return _expected(exc, ErrorCode.TOKEN_EXPIRED, FailureKind.UNAUTHENTICATED)
    if isinstance(exc, jwt.InvalidTokenError):
        return _expected(exc, ErrorCode.TOKEN_INVALID, FailureKind.UNAUTHENTICATED)
    if isinstance(exc, (AccessDeniedError, PermissionError)):
        return _expected(exc, ErrorCode.ACCESS_DENIED, FailureKind.ACCESS_DENIED)
    if isinstance(exc, StarletteHTTPException):
        if exc.status_code == 401:
            return _expected(
                exc, ErrorCode.UNAUTHORIZED, FailureKind.UNAUTHENTICATED, _http_detail(exc)
            )
        if exc.status_code == 403:
            return _expected(
                exc, ErrorCode.ACCESS_DENIED, FailureKind.ACCESS_DENIED, _http_detail(exc)
            )
    return None


def _classify_not_found(exc: BaseException, ctx: RequestContext) -> ClassifiedFailure | None:
    if isinstance(exc, NoRouteFoundError):
        path = exc.path or ctx.path
    elif isinstance(exc, StarletteHTTPException) and exc.status_code == 404:
        detail = _http_detail(exc)
        if detail is not None:
            return _expected(exc, ErrorCode.RESOURCE_NOT_FOUND, FailureKind.NOT_FOUND, detail)
        path = ctx.path
    else:
        return None
    return _expected(
        exc,
        ErrorCode.RESOURCE_NOT_FOUND,
        FailureKind.NOT_FOUND,
        f"Requested resource '{path}' does not exist",
    )


def _classify_timeout(exc: BaseException, ctx: RequestContext) -> ClassifiedFailure | None:
    if isinstance(exc, (RequestTimeoutError, TimeoutError)):
        return _expected(exc, ErrorCode.TIMEOUT_ERROR, FailureKind.TIMEOUT)
    if isinstance(exc, StarletteHTTPException) and exc.status_code == 408:
        return _expected(exc, ErrorCode.TIMEOUT_ERROR, FailureKind.TIMEOUT, _http_detail(exc))
    return None


def _classify_external(exc: BaseException, ctx: RequestContext) -> ClassifiedFailure | None:
    if isinstance(exc, httpx.TimeoutException):
        return _expected(exc, ErrorCode.TIMEOUT_ERROR, FailureKind.UPSTREAM_TIMEOUT)
    if isinstance(exc, httpx.TransportError):
        return _expected(exc, ErrorCode.SERVICE_UNAVAILABLE, FailureKind.UPSTREAM_UNAVAILABLE)
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 503:
        return _expected(exc, ErrorCode.SERVICE_UNAVAILABLE, FailureKind.UPSTREAM_UNAVAILABLE)
    if isinstance(exc, httpx.HTTPError):
        return _expected(exc, ErrorCode.EXTERNAL_SERVICE_ERROR, FailureKind.UPSTREAM_ERROR)
    return None


RULES: tuple[Rule, ...] = (
    _classify_domain,
    _classify_field_validation,
    _classify_constraint_validation,
    _classify_request_shape,
    _classify_authorization,
    _classify_not_found,
    _classify_timeout,
    _classify_external,
)


def unclassified(exc: BaseException | None) -> ClassifiedFailure:
    entry = ErrorCode.SYSTEM_ERROR.value
    return ClassifiedFailure(
        entry=entry,
        message=entry.default_message,
        kind=FailureKind.UNCLASSIFIED,
        is_expected=False,
        raw_diagnostic=_diagnostic(exc) if exc is not None else None,
        exception=exc,
    )


def classify(failure: BaseException, context: RequestContext | None = None) -> ClassifiedFailure:
    """Return the single most specific classification for ``failure``."""

    ctx = context or RequestContext()
    for rule in RULES:
        result = rule(failure, ctx)
        if result is not None:
            return result
    return unclassified(failure)
