from errorkit.core.classifier import (
    ClassifiedFailure,
    FailureKind,
    FieldError,
    RequestContext,
    classify,
)
from errorkit.core.codes import (
    ErrorCategory,
    ErrorCode,
    TaxonomyEntry,
    TaxonomyError,
    default_for,
    lookup,
    validate_taxonomy,
)
from errorkit.core.errors import (
    AccessDeniedError,
    BaseAppError,
    BindingError,
    BusinessError,
    ConstraintViolation,
    ConstraintViolationError,
    DataValidationError,
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
from errorkit.core.logging import log_failure, log_level_for
from errorkit.core.response import ErrorResponse, build, format_stack_trace, status_for
from errorkit.core.settings import LogLevels, Settings, get_settings


__all__ = [
    "AccessDeniedError",
    "BaseAppError",
    "BindingError",
    "BusinessError",
    "ClassifiedFailure",
    "ConstraintViolation",
    "ConstraintViolationError",
    "DataValidationError",
    "ErrorCategory",
    "ErrorCode",
    "ErrorResponse",
    "FailureKind",
    "FieldError",
    "FieldValidationError",
    "LogLevels",
    "MediaTypeNotSupportedError",
    "MessageNotReadableError",
    "MessageNotWritableError",
    "MethodNotSupportedError",
    "MissingParameterError",
    "MissingRequestPartError",
    "NoRouteFoundError",
    "PayloadTooLargeError",
    "RequestContext",
    "RequestShapeError",
    "RequestTimeoutError",
    "Settings",
    "TaxonomyEntry",
    "TaxonomyError",
    "TypeMismatchError",
    "build",
    "classify",
    "default_for",
    "format_stack_trace",
    "get_settings",
    "log_failure",
    "log_level_for",
    "lookup",
    "status_for",
    "validate_taxonomy",
]
