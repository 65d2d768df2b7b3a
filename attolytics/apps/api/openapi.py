from __future__ import annotations

from typing import Any

from attolytics.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response(
        "Event does not match the schema",
        _error_example(
            code="TYPE_MISMATCH",
            message="Column 'score' expects i64, got string",
            details={"event_index": 1, "table": "game_events", "column": "score"},
        ),
    ),
    403: _response(
        "Invalid credential or table not permitted",
        _error_example(
            code="INVALID_CREDENTIAL",
            message="Invalid credential for tenant 'demo'",
            details={"tenant_id": "demo"},
        ),
    ),
    404: _response(
        "Unknown tenant",
        _error_example(code="UNKNOWN_TENANT", message="Unknown tenant 'demo'", details={"tenant_id": "demo"}),
    ),
    413: _response(
        "Request body too large",
        _error_example(code="PAYLOAD_TOO_LARGE", message="Request body exceeds 32768 bytes"),
    ),
    422: _response(
        "Malformed request envelope",
        _error_example(code="REQUEST_VALIDATION_ERROR", message="Validation error"),
    ),
    500: _response(
        "Insert failed; nothing from the request was stored",
        _error_example(
            code="DB_STATEMENT_FAILED",
            message="Insert into 'game_events' failed: IntegrityError: NOT NULL constraint failed",
            details={"retryable": True, "table": "game_events", "event_index": 3},
        ),
    ),
    503: _response(
        "Database unavailable",
        _error_example(
            code="DB_POOL_TIMEOUT",
            message="Timed out waiting for a database connection",
            details={"retryable": True},
        ),
    ),
}
