from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from attolytics.apps.api.deps import declared_content_length
from attolytics.apps.api.errors import (
    attolytics_error_handler,
    http_exception_handler,
    payload_too_large_response,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from attolytics.apps.api.response import API_VERSION
from attolytics.apps.api.routes.events import router as events_router
from attolytics.apps.api.routes.health import router as health_router
from attolytics.core.config import Settings, get_settings
from attolytics.core.errors import AttolyticsError
from attolytics.core.logging import configure_logging
from attolytics.persistence.db import build_engine
from attolytics.schema.loader import load_schema
from attolytics.schema.model import Schema


logger = logging.getLogger(__name__)


def _declares_oversized_body(request: Request, limit: int) -> bool:
    try:
        declared = declared_content_length(request)
    except ValueError:
        # Left to the route dependency, which answers 400.
        return False
    return declared is not None and declared > limit


def create_app(
    *,
    schema: Schema | None = None,
    engine: AsyncEngine | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the ingestion API.

    The schema is loaded eagerly so a bad description stops startup before
    any request is served. An engine passed in stays owned by the caller.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    if schema is None:
        schema = load_schema(settings.schema_path, designator_field=settings.table_designator_field)
    owns_engine = engine is None
    if engine is None:
        engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "api_started tenants=%d tables=%d pool_size=%d",
            len(schema.tenants),
            len(schema.tables),
            settings.db_pool_size,
        )
        yield
        if owns_engine:
            await engine.dispose()
        logger.info("api_stopped")

    app = FastAPI(title="Attolytics API", version=API_VERSION, lifespan=lifespan)
    app.state.schema = schema
    app.state.engine = engine
    app.state.settings = settings

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        if _declares_oversized_body(request, settings.max_body_bytes):
            # Refuse before the body is read or parsed.
            response = payload_too_large_response(request, settings.max_body_bytes)
        else:
            response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.debug(
            "request method=%s path=%s status=%d latency_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(AttolyticsError)
    async def _attolytics_error_handler(request: Request, exc: AttolyticsError):
        return await attolytics_error_handler(request, exc)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(events_router, prefix=f"/{API_VERSION}")

    return app
