from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field

from attolytics.core.errors import AttolyticsError


API_VERSION = "v1"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)


class ErrorDetail(BaseModel):
    # code names the failure kind; details locate the event, table and column.
    code: str
    message: str
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


def request_meta(request: Request) -> ResponseMeta:
    # The request middleware stamps every request; handlers called directly get a fresh id.
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid4())
        request.state.request_id = request_id
    return ResponseMeta(request_id=request_id)


def envelope(request: Request, data: T) -> SuccessEnvelope[T]:
    return SuccessEnvelope(data=data, meta=request_meta(request))


def error_envelope(
    request: Request,
    *,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload = ErrorEnvelope(
        error=ErrorDetail(code=code, message=message, details=details or None),
        meta=request_meta(request),
    )
    return payload.model_dump(exclude_none=True)


def domain_error_envelope(request: Request, exc: AttolyticsError) -> dict[str, Any]:
    # Messages and details never carry credentials or event values.
    return error_envelope(request, code=exc.code, message=exc.message, details=exc.details())
