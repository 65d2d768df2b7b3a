from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncEngine

from attolytics.apps.api.cors import ALLOWED_METHODS, PREFLIGHT_MAX_AGE_S, allowed_origin, cors_headers
from attolytics.apps.api.deps import enforce_body_limit, get_app_settings, get_db_engine, get_schema
from attolytics.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from attolytics.apps.api.response import SuccessEnvelope, envelope
from attolytics.core.config import Settings
from attolytics.core.errors import UnknownTenant
from attolytics.schema.model import Schema
from attolytics.services.ingest import submit_events


router = APIRouter(prefix="/apps", tags=["events"], responses=DEFAULT_ERROR_RESPONSES)


class EventBatch(BaseModel):
    secret_key: str = Field(repr=False)
    events: list[Any]

    model_config = {
        "extra": "forbid",
        "json_schema_extra": {
            "examples": [
                {
                    "secret_key": "tenant-secret",
                    "events": [
                        {"_t": "game_events", "timestamp": 1554130180, "event_type": "game_start"},
                        {"_t": "game_events", "timestamp": 1554130213, "event_type": "game_end", "score": 42},
                    ],
                }
            ]
        },
    }


class IngestAck(BaseModel):
    inserted: dict[str, int]
    total: int


@router.options("/{tenant_id}/events", status_code=status.HTTP_204_NO_CONTENT)
async def events_preflight(
    tenant_id: str,
    request: Request,
    schema: Schema = Depends(get_schema),
) -> Response:
    # Answer CORS preflights with the tenant's declared origin.
    if schema.tenant(tenant_id) is None:
        raise UnknownTenant(tenant_id)
    origin = allowed_origin(schema, tenant_id, request.headers.get("origin"))
    if origin is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "CORS_ORIGIN_NOT_ALLOWED", "message": "Origin is not allowed for this tenant"},
        )
    headers = cors_headers(schema, tenant_id, request.headers.get("origin"))
    headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    headers["Access-Control-Allow-Headers"] = request.headers.get(
        "access-control-request-headers", "Content-Type"
    )
    headers["Access-Control-Max-Age"] = str(PREFLIGHT_MAX_AGE_S)
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=headers)


@router.post(
    "/{tenant_id}/events",
    response_model=SuccessEnvelope[IngestAck],
    dependencies=[Depends(enforce_body_limit)],
)
async def post_events(
    tenant_id: str,
    batch: EventBatch,
    request: Request,
    response: Response,
    schema: Schema = Depends(get_schema),
    engine: AsyncEngine = Depends(get_db_engine),
    settings: Settings = Depends(get_app_settings),
) -> SuccessEnvelope[IngestAck]:
    # All-or-nothing: either every event is committed or none is.
    ack = await submit_events(
        schema=schema,
        engine=engine,
        tenant_id=tenant_id,
        credential=batch.secret_key,
        raw_events=batch.events,
        headers=request.headers,
        designator_field=settings.table_designator_field,
    )
    for key, value in cors_headers(schema, tenant_id, request.headers.get("origin")).items():
        response.headers[key] = value
    payload = IngestAck(inserted=dict(ack.inserted), total=ack.total)
    return envelope(request, payload)
