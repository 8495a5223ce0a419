from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import Any, ClassVar

from errorkit.core.codes import ErrorCode


class BaseAppError(Exception):
    """Domain failure that carries an explicit taxonomy entry.

    ``BusinessError("text")`` is shorthand for the class default entry with a
    literal message. ``message_args`` fill ``{0}``-style placeholders of the
    entry's default message when no literal message is given.
    """

    default_error_code: ClassVar[ErrorCode] = ErrorCode.BUSINESS_ERROR

    def __init__(
        self,
        error_code: ErrorCode | str | None = None,
        message: str | None = None,
        *,
        message_args: Sequence[Any] = (),
        code: int | None = None,
    ) -> None:
        if isinstance(error_code, str):
            error_code, message = self.default_error_code, error_code
        self.error_code: ErrorCode = error_code or self.default_error_code
        self.message = message
        self.message_args = tuple(message_args)
        self.code = code
        super().__init__(message if message is not None else self.error_code.default_message)


class BusinessError(BaseAppError):
    default_error_code = ErrorCode.BUSINESS_ERROR


class DataValidationError(BaseAppError):
    default_error_code = ErrorCode.VALIDATION_ERROR


@dataclasses.dataclass(frozen=True, slots=True)
class ConstraintViolation:
    """One failed explicit constraint check."""

    property_path: str
    invalid_value: Any = None
    message: str | None = None


class ConstraintViolationError(Exception):
    def __init__(self, violations: Sequence[ConstraintViolation] = ()) -> None:
        self.violations = tuple(violations)
        super().__init__(
            "; ".join(f"{v.property_path}: {v.message or ''}" for v in self.violations)
        )


@dataclasses.dataclass(frozen=True, slots=True)
class BindingError:
    """A declarative validation error on a field, or on the whole object."""

    name: str
    message: str | None = None
    rejected_value: Any = None


class FieldValidationError(Exception):
    """Declarative validation result: field errors first, then global errors."""

    def __init__(
        self,
        field_errors: Sequence[BindingError] = (),
        global_errors: Sequence[BindingError] = (),
    ) -> None:
        self.field_errors = tuple(field_errors)
        self.global_errors = tuple(global_errors)
        super().__init__(
            f"{len(self.field_errors)} field error(s), {len(self.global_errors)} global error(s)"
        )


class RequestShapeError(Exception):
    """Request did not match what the endpoint accepts."""

    def describe(self) -> str:
        return ErrorCode.PARAM_ERROR.default_message

    def __str__(self) -> str:
        return self.describe()


@dataclasses.dataclass(eq=False)
class MethodNotSupportedError(RequestShapeError):
    method: str
    supported_methods: Sequence[str] = ()

    def describe(self) -> str:
        supported = ", ".join(self.supported_methods)
        return f"Request method '{self.method}' is not supported, supported methods: {supported}"


@dataclasses.dataclass(eq=False)
class MediaTypeNotSupportedError(RequestShapeError):
    content_type: str | None
    supported: Sequence[str] = ()

    def describe(self) -> str:
        message = f"Content type '{self.content_type or ''}' is not supported"
        if self.supported:
            message += f", supported media types: {', '.join(self.supported)}"
        return message


@dataclasses.dataclass(eq=False)
class MissingParameterError(RequestShapeError):
    name: str
    location: str = "query"

    def describe(self) -> str:
        return f"Required {self.location} parameter '{self.name}' is missing"


@dataclasses.dataclass(eq=False)
class TypeMismatchError(RequestShapeError):
    name: str
    value: Any = None
    reason: str | None = None

    def describe(self) -> str:
        message = f"Parameter '{self.name}' has invalid value {self.value!r}"
        if self.reason:
            message += f": {self.reason}"
        return message


@dataclasses.dataclass(eq=False)
class MessageNotReadableError(RequestShapeError):
    reason: str = ""

    def describe(self) -> str:
        if not self.reason:
            return "Request body is not readable"
        return f"Request body is not readable: {self.reason}"


@dataclasses.dataclass(eq=False)
class MessageNotWritableError(RequestShapeError):
    reason: str = ""

    def describe(self) -> str:
        if not self.reason:
            return "Response body is not writable"
        return f"Response body is not writable: {self.reason}"


@dataclasses.dataclass(eq=False)
class MissingRequestPartError(RequestShapeError):
    part_name: str

    def describe(self) -> str:
        return f"Required multipart part '{self.part_name}' is missing"


@dataclasses.dataclass(eq=False)
class PayloadTooLargeError(RequestShapeError):
    limit: int | None = None

    def describe(self) -> str:
        if self.limit is None:
            return "Upload size limit exceeded"
        return f"Upload size limit exceeded, maximum is {self.limit} bytes"


class AccessDeniedError(PermissionError):
    pass


@dataclasses.dataclass(eq=False)
class NoRouteFoundError(Exception):
    method: str
    path: str

    def __str__(self) -> str:
        return f"No route for {self.method} {self.path}"


@dataclasses.dataclass(eq=False)
class RequestTimeoutError(TimeoutError):
    timeout_s: float | None = None

    def __str__(self) -> str:
        if self.timeout_s is None:
            return "Request timed out"
        return f"Request timed out after {self.timeout_s:g}s"
