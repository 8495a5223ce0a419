"""FastAPI boundary: adapt framework failures, classify, build, log, respond."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from errorkit.core.classifier import RequestContext, classify
from errorkit.core.codes import ErrorCode
from errorkit.core.errors import (
    BaseAppError,
    ConstraintViolationError,
    FieldValidationError,
    MediaTypeNotSupportedError,
    MessageNotReadableError,
    MessageNotWritableError,
    MissingParameterError,
    MissingRequestPartError,
    NoRouteFoundError,
    RequestShapeError,
    RequestTimeoutError,
    TypeMismatchError,
)
from errorkit.core.logging import log_failure
from errorkit.core.response import build, format_timestamp
from errorkit.core.settings import Settings, get_settings


logger = logging.getLogger(__name__)

T = TypeVar("T")

TRACE_ID_HEADER = "X-Trace-Id"

PARAM_LOCATIONS = ("query", "path", "header", "cookie")

# Routed through Starlette's ExceptionMiddleware; everything else reaches
# the generic ``Exception`` handler.
HANDLED_TYPES: tuple[type[BaseException], ...] = (
    BaseAppError,
    RequestValidationError,
    ResponseValidationError,
    PydanticValidationError,
    FieldValidationError,
    ConstraintViolationError,
    RequestShapeError,
    StarletteHTTPException,
    PermissionError,
    jwt.InvalidTokenError,
    NoRouteFoundError,
    TimeoutError,
    httpx.HTTPError,
)


def request_context(request: Request) -> RequestContext:
    return RequestContext(
        method=request.method,
        path=request.url.path,
        trace_id=getattr(request.state, "trace_id", None),
    )


def _is_parse_error(error_type: str) -> bool:
    return (
        error_type.endswith("_parsing")
        or error_type.endswith("_type")
        or error_type in ("enum", "literal_error")
    )


def _is_multipart(request: Request) -> bool:
    content_type = request.headers.get("content-type") or ""
    return content_type.lower().startswith("multipart/form-data")


def translate_request_validation(
    exc: RequestValidationError, request: Request
) -> BaseException:
    """Pick out request-shape failures hidden in a FastAPI validation error.

    Missing parameters win over unreadable bodies, which win over missing
    multipart parts, which win over parameter type mismatches. Anything
    else stays a field validation failure.
    """

    errors = [(tuple(err.get("loc") or ()), err) for err in exc.errors()]

    for loc, err in errors:
        if err.get("type") == "missing" and len(loc) >= 2 and loc[0] in PARAM_LOCATIONS:
            return MissingParameterError(name=str(loc[-1]), location=str(loc[0]))

    for loc, err in errors:
        if err.get("type") == "json_invalid":
            reason = (err.get("ctx") or {}).get("error") or err.get("msg") or ""
            return MessageNotReadableError(reason=str(reason))

    if _is_multipart(request):
        for loc, err in errors:
            if err.get("type") == "missing" and len(loc) >= 2 and loc[0] == "body":
                return MissingRequestPartError(part_name=str(loc[-1]))

    for loc, err in errors:
        if len(loc) >= 2 and loc[0] in PARAM_LOCATIONS and _is_parse_error(str(err.get("type"))):
            return TypeMismatchError(
                name=".".join(str(part) for part in loc[1:]),
                value=err.get("input"),
                reason=err.get("msg"),
            )

    return exc


def translate(exc: BaseException, request: Request) -> BaseException:
    translated: BaseException = exc
    if isinstance(exc, RequestValidationError):
        translated = translate_request_validation(exc, request)
    elif isinstance(exc, ResponseValidationError):
        translated = MessageNotWritableError(reason="response failed validation")
    if translated is not exc:
        translated.__cause__ = exc
        translated = translated.with_traceback(exc.__traceback__)
    return translated


def _response_headers(exc: BaseException, trace_id: str | None) -> dict[str, str]:
    """Headers for the error response.

    An ``HTTPException`` keeps its own headers (``Allow`` on 405,
    ``WWW-Authenticate`` on 401); the trace id always wins.
    """

    headers: dict[str, str] = {}
    if isinstance(exc, StarletteHTTPException) and exc.headers:
        headers.update(exc.headers)
    if trace_id:
        headers[TRACE_ID_HEADER] = trace_id
    return headers


def _fallback_payload(context: RequestContext) -> dict[str, Any]:
    entry = ErrorCode.SYSTEM_ERROR.value
    return {
        "code": entry.code,
        "message": entry.default_message,
        "path": context.path,
        "timestamp": format_timestamp(dt.datetime.now()),
    }


def handle_failure(request: Request, exc: BaseException, settings: Settings) -> JSONResponse:
    """Turn any failure into a structured response. Never raises."""

    context = request_context(request)

    try:
        classified = classify(translate(exc, request), context)
        response, status_code = build(classified, context, settings)
        log_failure(classified, context, settings)
        content = response.to_payload()
    except Exception as handling_exc:
        logger.error(
            "Failed to build error response (trace_id=%s method=%s path=%s)",
            context.trace_id,
            context.method,
            context.path,
            exc_info=(type(handling_exc), handling_exc, handling_exc.__traceback__),
        )
        status_code = 500
        content = _fallback_payload(context)

    return JSONResponse(
        status_code=status_code,
        headers=_response_headers(exc, context.trace_id),
        content=content,
    )


async def bind_trace_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """HTTP middleware: reuse the caller's trace id or mint one, and echo it back.

    Handlers read it from ``request.state.trace_id`` for logs and headers.
    """

    trace_id = request.headers.get(TRACE_ID_HEADER) or uuid.uuid4().hex
    request.state.trace_id = trace_id
    response = await call_next(request)
    response.headers[TRACE_ID_HEADER] = trace_id
    return response


def register_exception_handlers(app: FastAPI, settings: Settings | None = None) -> None:
    """Install the handlers on ``app`` unless the policy disables them."""

    settings = settings or get_settings()
    if not settings.enabled:
        logger.info("Global exception handling disabled by configuration")
        return

    async def _handle(request: Request, exc: Exception) -> JSONResponse:
        return handle_failure(request, exc, settings)

    for exc_type in HANDLED_TYPES:
        app.add_exception_handler(exc_type, _handle)
    app.add_exception_handler(Exception, _handle)


def require_content_type(*media_types: str) -> Callable[[Request], None]:
    """Dependency that rejects requests whose body is not one of ``media_types``."""

    accepted = tuple(m.lower() for m in media_types)

    def _check(request: Request) -> None:
        content_type = request.headers.get("content-type")
        base = (content_type or "").split(";", 1)[0].strip().lower()
        if base not in accepted:
            raise MediaTypeNotSupportedError(content_type, accepted)

    return _check


async def with_deadline(awaitable: Awaitable[T], timeout_s: float | None) -> T:
    """Await with a deadline; expiry surfaces as ``RequestTimeoutError``."""

    if timeout_s is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise RequestTimeoutError(timeout_s) from exc
