from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from attolytics.apps.api.cors import cors_headers, tenant_from_path
from attolytics.apps.api.response import domain_error_envelope, error_envelope
from attolytics.core.errors import (
    AttolyticsError,
    AuthError,
    ConnectionFailed,
    PoolTimeout,
    TableNotPermitted,
    UnknownTenant,
    ValidationError,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def status_for_error(exc: AttolyticsError) -> int:
    # Authorization, invalid batch contents and backend failures stay distinguishable.
    if isinstance(exc, UnknownTenant):
        return 404
    if isinstance(exc, AuthError):
        return 403
    if isinstance(exc, TableNotPermitted):
        return 403
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (PoolTimeout, ConnectionFailed)):
        return 503
    return 500


def _cors_for(request: Request) -> dict[str, str]:
    schema = getattr(request.app.state, "schema", None)
    if schema is None:
        return {}
    # Middleware responses run before routing, so the tenant may only be in the path.
    tenant_id = request.path_params.get("tenant_id") or tenant_from_path(request.url.path)
    return cors_headers(schema, tenant_id, request.headers.get("origin"))


def payload_too_large_response(request: Request, limit: int) -> JSONResponse:
    payload = error_envelope(
        request,
        code="PAYLOAD_TOO_LARGE",
        message=f"Request body exceeds {limit} bytes",
    )
    return JSONResponse(content=payload, status_code=413, headers=_cors_for(request))


async def attolytics_error_handler(request: Request, exc: AttolyticsError) -> JSONResponse:
    payload = domain_error_envelope(request, exc)
    return JSONResponse(content=payload, status_code=status_for_error(exc), headers=_cors_for(request))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_envelope(request, code=code, message=message, details=details)
    headers = dict(exc.headers or {})
    headers.update(_cors_for(request))
    return JSONResponse(content=payload, status_code=exc.status_code, headers=headers)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Routing errors (404/405) get the same envelope as handler errors.
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_envelope(request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed request bodies (not JSON, wrong envelope shape) are reported as 422.
    # Only locations and messages are returned, never the submitted values.
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    payload = error_envelope(
        request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": errors},
    )
    return JSONResponse(content=payload, status_code=422, headers=_cors_for(request))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("unhandled_error path=%s", request.url.path)
    payload = error_envelope(request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
