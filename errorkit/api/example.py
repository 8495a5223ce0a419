from __future__ import annotations

import asyncio
from typing import Any

import httpx
import jwt
from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field, model_validator

from errorkit.core.codes import ErrorCode
from errorkit.core.errors import (
    AccessDeniedError,
    BusinessError,
    ConstraintViolation,
    ConstraintViolationError,
    DataValidationError,
    PayloadTooLargeError,
)
from errorkit.core.response import ErrorResponse
from errorkit.core.settings import Settings, get_settings
from errorkit.handlers import require_content_type, with_deadline


router = APIRouter(
    prefix="/api/example",
    tags=["example"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


MAX_UPLOAD_BYTES = 1024


class UserRequest(BaseModel):
    username: str = Field(min_length=1)
    age: int = Field(ge=0)
    password: str | None = None
    confirm_password: str | None = None

    @model_validator(mode="after")
    def _passwords_match(self) -> "UserRequest":
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class TransferRequest(BaseModel):
    # Checked by hand below so each failed rule becomes one violation.
    amount: float
    currency: str


@router.get("/business-error")
async def business_error() -> str:
    raise BusinessError(ErrorCode.BUSINESS_ERROR, "This is a business exception example")


@router.get("/custom-business-error")
async def custom_business_error() -> str:
    raise BusinessError(ErrorCode.RESOURCE_NOT_FOUND, "User does not exist")


@router.api_route("/items", methods=["GET", "POST"])
async def items() -> list[str]:
    return []


@router.get("/resources/{resource_id}")
async def get_resource(resource_id: int) -> dict[str, int]:
    raise BusinessError(ErrorCode.RESOURCE_NOT_FOUND)


@router.get("/validation-error")
async def validation_error() -> str:
    raise DataValidationError("Data validation failed")


@router.get("/system-error")
async def system_error() -> str:
    raise RuntimeError("This is a system exception example")


@router.post("/validation")
async def validate_user(request: UserRequest) -> str:
    return "Validation passed"


@router.post("/transfer")
async def transfer(request: TransferRequest) -> dict[str, Any]:
    violations: list[ConstraintViolation] = []
    if request.amount <= 0:
        violations.append(
            ConstraintViolation("transfer.amount", request.amount, "must be greater than 0")
        )
    if len(request.currency) != 3:
        violations.append(
            ConstraintViolation(
                "transfer.currency", request.currency, "must be a 3-letter currency code"
            )
        )
    if violations:
        raise ConstraintViolationError(violations)
    return {"amount": request.amount, "currency": request.currency.upper()}


@router.get("/missing-param")
async def missing_param(name: str = Query()) -> str:
    return f"Hello {name}"


@router.get("/type-mismatch")
async def type_mismatch(age: int = Query()) -> str:
    return f"Age is {age}"


@router.post("/upload")
async def upload(file: UploadFile = File()) -> dict[str, Any]:
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise PayloadTooLargeError(limit=MAX_UPLOAD_BYTES)
    return {"filename": file.filename, "size": len(content)}


@router.post("/json-only", dependencies=[Depends(require_content_type("application/json"))])
async def json_only(payload: dict[str, Any]) -> dict[str, Any]:
    return payload


@router.get("/forbidden")
async def forbidden() -> str:
    raise AccessDeniedError("admin role required")


def get_token_claims(
    authorization: str | None = Header(default=None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.removeprefix("Bearer ").strip()
    # Expired and malformed tokens propagate as PyJWT errors.
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


@router.get("/secure")
async def secure(claims: dict[str, Any] = Depends(get_token_claims)) -> dict[str, Any]:
    return {"sub": claims.get("sub")}


@router.get("/upstream")
async def upstream(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    async with httpx.AsyncClient() as client:
        response = await client.get(settings.upstream_url, timeout=5.0)
        response.raise_for_status()
    return {"status": response.status_code}


@router.get("/slow")
async def slow(
    seconds: float = Query(ge=0),
    settings: Settings = Depends(get_settings),
) -> dict[str, float]:
    await with_deadline(asyncio.sleep(seconds), settings.request_timeout_s)
    return {"slept": seconds}
