"""Severity selection and emission of one log record per handled failure.

Expected failures log the message only. Unexpected ones log at the
configured ``system`` level with the full cause chain.
"""

from __future__ import annotations

import logging

from errorkit.core.classifier import ClassifiedFailure, FailureKind, RequestContext
from errorkit.core.codes import ErrorCategory
from errorkit.core.settings import Settings, Severity


TRACE = 5
logging.addLevelName(TRACE, "TRACE")

SEVERITY_LEVELS: dict[str, int] = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_SUMMARIES: dict[FailureKind, str] = {
    FailureKind.DOMAIN: "Business exception occurred",
    FailureKind.FIELD_VALIDATION: "Method argument validation failed",
    FailureKind.CONSTRAINT_VALIDATION: "Constraint validation failed",
    FailureKind.METHOD_NOT_SUPPORTED: "HTTP request method not supported",
    FailureKind.MEDIA_TYPE_NOT_SUPPORTED: "HTTP media type not supported",
    FailureKind.MISSING_PARAMETER: "Missing request parameter",
    FailureKind.TYPE_MISMATCH: "Type mismatch occurred",
    FailureKind.MESSAGE_NOT_READABLE: "HTTP message not readable",
    FailureKind.MESSAGE_NOT_WRITABLE: "HTTP message not writable",
    FailureKind.MISSING_PART: "Missing request part",
    FailureKind.PAYLOAD_TOO_LARGE: "Upload size exceeded",
    FailureKind.BAD_REQUEST: "Bad request",
    FailureKind.UNAUTHENTICATED: "Authentication failed",
    FailureKind.ACCESS_DENIED: "Access denied",
    FailureKind.NOT_FOUND: "No handler found",
    FailureKind.TIMEOUT: "Async request timeout",
    FailureKind.UPSTREAM_TIMEOUT: "External service timeout",
    FailureKind.UPSTREAM_UNAVAILABLE: "External service unavailable",
    FailureKind.UPSTREAM_ERROR: "External service error",
    FailureKind.UNCLASSIFIED: "Unexpected exception occurred",
}


logger = logging.getLogger(__name__)


def _configured(policy: Settings, category: ErrorCategory) -> Severity:
    levels = policy.log_level
    if category is ErrorCategory.SYSTEM:
        return levels.system
    if category in (ErrorCategory.VALIDATION, ErrorCategory.AUTHORIZATION):
        return levels.validation
    # Business and external-service outcomes share the business level.
    return levels.business


def log_level_for(classified: ClassifiedFailure, policy: Settings) -> int:
    if not classified.is_expected:
        return SEVERITY_LEVELS[policy.log_level.system]
    return SEVERITY_LEVELS[_configured(policy, classified.entry.category)]


def log_failure(
    classified: ClassifiedFailure,
    context: RequestContext,
    policy: Settings,
    log: logging.Logger | None = None,
) -> None:
    if not policy.enable_logging:
        return
    log = log or logger
    level = log_level_for(classified, policy)
    if not log.isEnabledFor(level):
        return

    summary = _SUMMARIES[classified.kind]
    detail = classified.raw_diagnostic or classified.message
    if classified.is_expected:
        log.log(
            level,
            "%s - [%s] %s (trace_id=%s): %s",
            summary,
            context.method,
            context.path,
            context.trace_id,
            detail,
        )
        return

    exc = classified.exception
    exc_info = (type(exc), exc, exc.__traceback__) if exc is not None else None
    log.log(
        level,
        "%s - [%s] %s (trace_id=%s): %s",
        summary,
        context.method,
        context.path,
        context.trace_id,
        detail,
        exc_info=exc_info,
    )
