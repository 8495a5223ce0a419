from __future__ import annotations

import httpx
import jwt
import pytest
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError, model_validator
from starlette.exceptions import HTTPException

from errorkit.core.classifier import (
    FailureKind,
    FieldError,
    RequestContext,
    classify,
    field_errors_from_pydantic,
    interpolate,
)
from errorkit.core.codes import ErrorCode
from errorkit.core.errors import (
    AccessDeniedError,
    BindingError,
    BusinessError,
    ConstraintViolation,
    ConstraintViolationError,
    DataValidationError,
    FieldValidationError,
    MediaTypeNotSupportedError,
    MessageNotReadableError,
    MethodNotSupportedError,
    MissingParameterError,
    MissingRequestPartError,
    NoRouteFoundError,
    PayloadTooLargeError,
    RequestShapeError,
    RequestTimeoutError,
    TypeMismatchError,
)
from errorkit.core.response import status_for


CTX = RequestContext(method="GET", path="/api/things")


class _Form(BaseModel):
    age: int
    name: str


class _PasswordForm(BaseModel):
    password: str
    confirm: str

    @model_validator(mode="after")
    def _match(self) -> "_PasswordForm":
        if self.password != self.confirm:
            raise ValueError("passwords do not match")
        return self


def _request() -> httpx.Request:
    return httpx.Request("GET", "https://upstream.test/status")


# --- domain ------------------------------------------------------------------


def test_business_error_without_message_uses_default() -> None:
    result = classify(BusinessError(ErrorCode.RESOURCE_NOT_FOUND), CTX)

    assert result.entry is ErrorCode.RESOURCE_NOT_FOUND.value
    assert result.message == "Resource not found"
    assert result.kind is FailureKind.DOMAIN
    assert result.is_expected is True
    assert result.response_code == 2001


def test_business_error_shorthand_and_explicit_message() -> None:
    result = classify(BusinessError("out of stock"), CTX)
    assert result.entry is ErrorCode.BUSINESS_ERROR.value
    assert result.message == "out of stock"

    result = classify(BusinessError(ErrorCode.OPERATION_NOT_ALLOWED, "frozen account"), CTX)
    assert result.response_code == 2003
    assert result.message == "frozen account"


def test_business_error_args_without_placeholders_keep_default_message() -> None:
    exc = BusinessError(ErrorCode.RESOURCE_NOT_FOUND, message_args=("user", 42))
    assert classify(exc, CTX).message == "Resource not found"


def test_interpolate_fills_positional_placeholders() -> None:
    assert interpolate("User {0} not found in {1}", ("bob", "org")) == "User bob not found in org"
    # Missing argument leaves the template alone.
    assert interpolate("User {0} in {1}", ("bob",)) == "User {0} in {1}"
    assert interpolate("plain", ()) == "plain"


def test_instance_specific_code_overrides_entry_code() -> None:
    result = classify(BusinessError(ErrorCode.BUSINESS_ERROR, "quota", code=2999), CTX)
    assert result.entry is ErrorCode.BUSINESS_ERROR.value
    assert result.response_code == 2999


def test_data_validation_error_is_domain_with_validation_entry() -> None:
    result = classify(DataValidationError("bad payload"), CTX)
    assert result.entry is ErrorCode.VALIDATION_ERROR.value
    assert result.kind is FailureKind.DOMAIN
    assert result.message == "bad payload"


# --- validation --------------------------------------------------------------


def test_field_errors_come_before_global_errors_in_reported_order() -> None:
    exc = FieldValidationError(
        field_errors=[
            BindingError("age", "must be positive", -1),
            BindingError("name", "must not be blank", ""),
        ],
        global_errors=[BindingError("form", "passwords differ")],
    )

    result = classify(exc, CTX)

    assert result.kind is FailureKind.FIELD_VALIDATION
    assert result.entry is ErrorCode.VALIDATION_ERROR.value
    assert [fe.field for fe in result.field_errors] == ["age", "name", "form"]
    assert result.field_errors[0].rejected_value == -1
    assert result.field_errors[2].rejected_value is None


def test_duplicate_field_names_are_preserved() -> None:
    exc = FieldValidationError(
        field_errors=[BindingError("tags", "too long"), BindingError("tags", "bad char")]
    )
    assert [fe.message for fe in classify(exc, CTX).field_errors] == ["too long", "bad char"]


def test_pydantic_errors_map_field_path_value_and_message() -> None:
    with pytest.raises(ValidationError) as info:
        _Form.model_validate({"age": "x"})

    result = classify(info.value, CTX)

    assert result.kind is FailureKind.FIELD_VALIDATION
    assert [fe.field for fe in result.field_errors] == ["age", "name"]
    assert result.field_errors[0].rejected_value == "x"
    assert result.field_errors[0].message
    # "missing" carries the enclosing object as input; it is not the field value.
    assert result.field_errors[1].rejected_value is None


def test_pydantic_model_level_error_is_named_after_model() -> None:
    with pytest.raises(ValidationError) as info:
        _PasswordForm.model_validate({"password": "a", "confirm": "b"})

    result = classify(info.value, CTX)

    assert len(result.field_errors) == 1
    assert result.field_errors[0].field == "_PasswordForm"
    assert "passwords do not match" in result.field_errors[0].message


def test_object_level_errors_sorted_after_field_errors() -> None:
    errors = [
        {"loc": (), "msg": "form invalid"},
        {"loc": ("age",), "msg": "too small", "input": -1},
        {"loc": ("name",), "msg": "blank", "input": ""},
    ]
    flattened = field_errors_from_pydantic(errors, object_name="form")
    assert [fe.field for fe in flattened] == ["age", "name", "form"]


def test_request_validation_error_strips_location_prefix() -> None:
    exc = RequestValidationError(
        [
            {"type": "string_too_short", "loc": ("body", "username"), "msg": "too short", "input": ""},
            {"type": "value_error", "loc": ("body",), "msg": "Value error, mismatch", "input": {}},
        ]
    )

    result = classify(exc, CTX)

    assert [fe.field for fe in result.field_errors] == ["username", "body"]


def test_validation_with_no_violations_has_empty_field_errors() -> None:
    result = classify(FieldValidationError(), CTX)
    assert result.field_errors == ()
    assert result.message == ErrorCode.VALIDATION_ERROR.default_message


def test_constraint_violations_map_one_to_one() -> None:
    exc = ConstraintViolationError(
        [
            ConstraintViolation("create.user.age", 200, "must be at most 150"),
            ConstraintViolation("create.user.email", "x", None),
        ]
    )

    result = classify(exc, CTX)

    assert result.kind is FailureKind.CONSTRAINT_VALIDATION
    assert result.field_errors == (
        FieldError(field="create.user.age", rejected_value=200, message="must be at most 150"),
        FieldError(field="create.user.email", rejected_value="x", message=""),
    )


# --- request shape -----------------------------------------------------------


def test_unsupported_method_names_method_and_supported_methods() -> None:
    result = classify(MethodNotSupportedError("DELETE", ["GET", "POST"]), CTX)

    assert result.response_code == 1003
    assert result.kind is FailureKind.METHOD_NOT_SUPPORTED
    assert "DELETE" in result.message
    assert "GET, POST" in result.message


def test_starlette_405_uses_allow_header_and_request_method() -> None:
    exc = HTTPException(status_code=405, headers={"Allow": "POST, GET"})
    result = classify(exc, RequestContext(method="DELETE", path="/items"))

    assert result.response_code == 1003
    assert result.message == (
        "Request method 'DELETE' is not supported, supported methods: GET, POST"
    )


def test_missing_parameter_names_parameter() -> None:
    result = classify(MissingParameterError("name"), CTX)
    assert result.response_code == 1005
    assert "'name'" in result.message


@pytest.mark.parametrize(
    ("exc", "error_code", "kind", "fragment"),
    [
        (
            MediaTypeNotSupportedError("text/plain", ["application/json"]),
            ErrorCode.MEDIA_TYPE_NOT_SUPPORTED,
            FailureKind.MEDIA_TYPE_NOT_SUPPORTED,
            "text/plain",
        ),
        (
            TypeMismatchError("age", "abc"),
            ErrorCode.TYPE_MISMATCH,
            FailureKind.TYPE_MISMATCH,
            "'age'",
        ),
        (
            MissingRequestPartError("file"),
            ErrorCode.MISSING_SERVLET_REQUEST_PART,
            FailureKind.MISSING_PART,
            "'file'",
        ),
        (
            MessageNotReadableError("Expecting value"),
            ErrorCode.HTTP_MESSAGE_NOT_READABLE,
            FailureKind.MESSAGE_NOT_READABLE,
            "Request body is not readable",
        ),
        (
            PayloadTooLargeError(limit=10),
            ErrorCode.MAX_UPLOAD_SIZE_EXCEEDED,
            FailureKind.PAYLOAD_TOO_LARGE,
            "Upload size limit exceeded",
        ),
    ],
)
def test_request_shape_variants(
    exc: Exception, error_code: ErrorCode, kind: FailureKind, fragment: str
) -> None:
    result = classify(exc, CTX)
    assert result.entry is error_code.value
    assert result.kind is kind
    assert fragment in result.message
    assert result.is_expected is True


def test_generic_client_http_error_keeps_its_status() -> None:
    result = classify(HTTPException(status_code=409, detail="version conflict"), CTX)
    assert result.entry is ErrorCode.PARAM_ERROR.value
    assert result.status_hint == 409
    assert result.message == "version conflict"


# --- authorization, not found, timeout, external ------------------------------


def test_access_denied_variants() -> None:
    assert classify(AccessDeniedError("nope"), CTX).entry is ErrorCode.ACCESS_DENIED.value
    assert classify(PermissionError("nope"), CTX).entry is ErrorCode.ACCESS_DENIED.value
    assert classify(HTTPException(status_code=403), CTX).kind is FailureKind.ACCESS_DENIED


def test_token_errors() -> None:
    expired = classify(jwt.ExpiredSignatureError("expired"), CTX)
    invalid = classify(jwt.DecodeError("garbage"), CTX)
    missing = classify(HTTPException(status_code=401, detail="Missing bearer token"), CTX)

    assert expired.entry is ErrorCode.TOKEN_EXPIRED.value
    assert invalid.entry is ErrorCode.TOKEN_INVALID.value
    assert missing.entry is ErrorCode.UNAUTHORIZED.value
    assert missing.message == "Missing bearer token"


def test_not_found_names_the_path() -> None:
    result = classify(HTTPException(status_code=404), RequestContext("GET", "/nowhere"))
    assert result.kind is FailureKind.NOT_FOUND
    assert result.response_code == 2001
    assert "/nowhere" in result.message

    result = classify(NoRouteFoundError("GET", "/gone"), CTX)
    assert "/gone" in result.message


def test_timeouts() -> None:
    assert classify(RequestTimeoutError(1.5), CTX).kind is FailureKind.TIMEOUT
    assert classify(TimeoutError(), CTX).entry is ErrorCode.TIMEOUT_ERROR.value


def test_external_service_failures() -> None:
    timeout = classify(httpx.ReadTimeout("slow", request=_request()), CTX)
    refused = classify(httpx.ConnectError("refused", request=_request()), CTX)
    bad = httpx.HTTPStatusError(
        "boom", request=_request(), response=httpx.Response(500, request=_request())
    )

    assert timeout.kind is FailureKind.UPSTREAM_TIMEOUT
    assert timeout.entry is ErrorCode.TIMEOUT_ERROR.value
    assert refused.entry is ErrorCode.SERVICE_UNAVAILABLE.value
    assert classify(bad, CTX).entry is ErrorCode.EXTERNAL_SERVICE_ERROR.value


# --- catch-all -----------------------------------------------------------------


class _Weird(Exception):
    pass


@pytest.mark.parametrize(
    "exc",
    [
        RuntimeError("boom"),
        ValueError(),
        KeyError("k"),
        _Weird("odd"),
        HTTPException(status_code=503),
        ZeroDivisionError("division by zero"),
    ],
)
def test_unrecognized_failures_fall_through_to_system_error(exc: Exception) -> None:
    result = classify(exc, CTX)

    assert result.kind is FailureKind.UNCLASSIFIED
    assert result.entry is ErrorCode.SYSTEM_ERROR.value
    assert result.message == "Internal system error"
    assert result.is_expected is False
    assert result.exception is exc


def test_classify_without_context() -> None:
    assert classify(RuntimeError("x")).response_code == 1000


def test_domain_error_with_authorization_entry_stays_domain() -> None:
    result = classify(BusinessError(ErrorCode.ACCESS_DENIED, "not your order"), CTX)
    assert result.kind is FailureKind.DOMAIN
    assert result.entry is ErrorCode.ACCESS_DENIED.value
    assert result.message == "not your order"
    assert status_for(result) == 200


def test_bare_request_shape_error_is_a_parameter_error() -> None:
    class _UnnamedShape(RequestShapeError):
        pass

    for exc in (RequestShapeError(), _UnnamedShape()):
        result = classify(exc, CTX)

        assert result.kind is FailureKind.BAD_REQUEST
        assert result.entry is ErrorCode.PARAM_ERROR.value
        assert result.message == "Invalid parameter"
        assert str(exc) == "Invalid parameter"
        assert status_for(result) == 400
