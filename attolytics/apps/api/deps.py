from __future__ import annotations

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncEngine

from attolytics.core.config import Settings, get_settings
from attolytics.schema.model import Schema


def get_schema(request: Request) -> Schema:
    # The schema is loaded once in create_app() and shared read-only.
    return request.app.state.schema


def get_db_engine(request: Request) -> AsyncEngine:
    return request.app.state.engine


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def _too_large(limit: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail={"code": "PAYLOAD_TOO_LARGE", "message": f"Request body exceeds {limit} bytes"},
    )


def declared_content_length(request: Request) -> int | None:
    # None when the header is absent; ValueError when it is not a number.
    content_length = request.headers.get("content-length")
    if not content_length:
        return None
    return int(content_length)


async def enforce_body_limit(request: Request) -> None:
    # Declared lengths are already rejected in middleware; this also covers chunked bodies.
    limit = get_app_settings(request).max_body_bytes
    try:
        declared = declared_content_length(request)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "BAD_REQUEST", "message": "Invalid Content-Length header"},
        ) from exc
    if declared is not None and declared > limit:
        raise _too_large(limit)
    body = await request.body()
    if len(body) > limit:
        raise _too_large(limit)
