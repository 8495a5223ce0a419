from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable


class ErrorCategory(str, enum.Enum):
    SYSTEM = "system"
    VALIDATION = "validation"
    BUSINESS = "business"
    AUTHORIZATION = "authorization"
    EXTERNAL_SERVICE = "external_service"


# Reserved numeric range per category (inclusive). 0 means success.
CATEGORY_RANGES: dict[ErrorCategory, tuple[int, int]] = {
    ErrorCategory.SYSTEM: (1000, 1999),
    ErrorCategory.VALIDATION: (1000, 1999),
    ErrorCategory.BUSINESS: (2000, 2999),
    ErrorCategory.AUTHORIZATION: (3000, 3999),
    ErrorCategory.EXTERNAL_SERVICE: (4000, 4999),
}

SUCCESS_CODE = 0


class TaxonomyError(ValueError):
    """Raised at startup when the error catalog is inconsistent."""


@dataclasses.dataclass(frozen=True, slots=True)
class TaxonomyEntry:
    code: int
    default_message: str
    category: ErrorCategory


class ErrorCode(enum.Enum):
    """Stable error catalog. Codes are part of the wire contract."""

    SYSTEM_ERROR = TaxonomyEntry(1000, "Internal system error", ErrorCategory.SYSTEM)
    PARAM_ERROR = TaxonomyEntry(1001, "Invalid parameter", ErrorCategory.VALIDATION)
    VALIDATION_ERROR = TaxonomyEntry(1002, "Data validation failed", ErrorCategory.VALIDATION)
    REQUEST_METHOD_NOT_SUPPORTED = TaxonomyEntry(
        1003, "Request method not supported", ErrorCategory.VALIDATION
    )
    MEDIA_TYPE_NOT_SUPPORTED = TaxonomyEntry(
        1004, "Media type not supported", ErrorCategory.VALIDATION
    )
    MISSING_REQUEST_PARAMETER = TaxonomyEntry(
        1005, "Missing request parameter", ErrorCategory.VALIDATION
    )
    TYPE_MISMATCH = TaxonomyEntry(1006, "Parameter type mismatch", ErrorCategory.VALIDATION)
    HTTP_MESSAGE_NOT_READABLE = TaxonomyEntry(
        1007, "Request body is not readable", ErrorCategory.VALIDATION
    )
    MISSING_SERVLET_REQUEST_PART = TaxonomyEntry(
        1008, "Missing multipart request part", ErrorCategory.VALIDATION
    )
    MAX_UPLOAD_SIZE_EXCEEDED = TaxonomyEntry(
        1009, "Upload size limit exceeded", ErrorCategory.VALIDATION
    )

    BUSINESS_ERROR = TaxonomyEntry(2000, "Business processing failed", ErrorCategory.BUSINESS)
    RESOURCE_NOT_FOUND = TaxonomyEntry(2001, "Resource not found", ErrorCategory.BUSINESS)
    RESOURCE_ALREADY_EXISTS = TaxonomyEntry(
        2002, "Resource already exists", ErrorCategory.BUSINESS
    )
    OPERATION_NOT_ALLOWED = TaxonomyEntry(
        2003, "Operation not allowed", ErrorCategory.BUSINESS
    )

    UNAUTHORIZED = TaxonomyEntry(3000, "Unauthorized", ErrorCategory.AUTHORIZATION)
    ACCESS_DENIED = TaxonomyEntry(3001, "Access denied", ErrorCategory.AUTHORIZATION)
    TOKEN_EXPIRED = TaxonomyEntry(3002, "Token expired", ErrorCategory.AUTHORIZATION)
    TOKEN_INVALID = TaxonomyEntry(3003, "Token invalid", ErrorCategory.AUTHORIZATION)

    EXTERNAL_SERVICE_ERROR = TaxonomyEntry(
        4000, "External service error", ErrorCategory.EXTERNAL_SERVICE
    )
    SERVICE_UNAVAILABLE = TaxonomyEntry(
        4001, "Service unavailable", ErrorCategory.EXTERNAL_SERVICE
    )
    TIMEOUT_ERROR = TaxonomyEntry(4002, "Request timed out", ErrorCategory.EXTERNAL_SERVICE)

    @property
    def code(self) -> int:
        return self.value.code

    @property
    def default_message(self) -> str:
        return self.value.default_message

    @property
    def category(self) -> ErrorCategory:
        return self.value.category


_DEFAULTS: dict[ErrorCategory, ErrorCode] = {
    ErrorCategory.SYSTEM: ErrorCode.SYSTEM_ERROR,
    ErrorCategory.VALIDATION: ErrorCode.VALIDATION_ERROR,
    ErrorCategory.BUSINESS: ErrorCode.BUSINESS_ERROR,
    ErrorCategory.AUTHORIZATION: ErrorCode.ACCESS_DENIED,
    ErrorCategory.EXTERNAL_SERVICE: ErrorCode.EXTERNAL_SERVICE_ERROR,
}


def validate_taxonomy(entries: Iterable[TaxonomyEntry]) -> None:
    """Reject duplicate codes and codes outside their category range."""

    seen: dict[int, TaxonomyEntry] = {}
    for entry in entries:
        if entry.code == SUCCESS_CODE:
            raise TaxonomyError(f"code {SUCCESS_CODE} is reserved for success")
        low, high = CATEGORY_RANGES[entry.category]
        if not low <= entry.code <= high:
            raise TaxonomyError(
                f"code {entry.code} is outside the {entry.category.value} range {low}-{high}"
            )
        if entry.code in seen:
            raise TaxonomyError(
                f"duplicate code {entry.code}: "
                f"{seen[entry.code].default_message!r} and {entry.default_message!r}"
            )
        seen[entry.code] = entry


def lookup(category: ErrorCategory, code: int) -> TaxonomyEntry | None:
    for member in ErrorCode:
        if member.category is category and member.code == code:
            return member.value
    return None


def default_for(category: ErrorCategory) -> TaxonomyEntry:
    return _DEFAULTS[category].value


# Fail at import (process start) rather than at request time.
validate_taxonomy(member.value for member in ErrorCode)
