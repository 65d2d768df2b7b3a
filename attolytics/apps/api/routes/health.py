from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncEngine

from attolytics.apps.api.deps import get_db_engine, get_schema
from attolytics.apps.api.response import SuccessEnvelope, envelope
from attolytics.persistence.db import pool_stats
from attolytics.schema.model import Schema

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    tenants: int
    tables: int
    pool: dict[str, int | None]


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(
    request: Request,
    schema: Schema = Depends(get_schema),
    engine: AsyncEngine = Depends(get_db_engine),
) -> SuccessEnvelope[HealthResponse]:
    # Liveness only: the pool counters are read without touching the database.
    payload = HealthResponse(
        status="ok",
        tenants=len(schema.tenants),
        tables=len(schema.tables),
        pool=pool_stats(engine),
    )
    return envelope(request, payload)
