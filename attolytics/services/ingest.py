from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncEngine

from attolytics.core.config import TABLE_DESIGNATOR_FIELD
from attolytics.core.errors import AuthError, ExecutionError, ValidationError
from attolytics.schema.model import Schema
from attolytics.services.auth import authenticate
from attolytics.services.executor import Ack, execute
from attolytics.services.planner import plan_inserts
from attolytics.services.validator import validate_batch


logger = logging.getLogger(__name__)


async def submit_events(
    *,
    schema: Schema,
    engine: AsyncEngine,
    tenant_id: str,
    credential: str | bytes,
    raw_events: Sequence[Any],
    headers: Mapping[str, str] | None = None,
    designator_field: str = TABLE_DESIGNATOR_FIELD,
) -> Ack:
    """Authenticate, validate, plan and atomically insert one request's events.

    Raises ``AuthError``, ``ValidationError`` or ``ExecutionError``; in every
    failure case no row from the request is left in the database.
    """
    try:
        tenant = authenticate(schema, tenant_id, credential)
    except AuthError as exc:
        logger.warning("ingest_rejected tenant=%s kind=%s", tenant_id, exc.code)
        raise

    try:
        rows = validate_batch(
            tenant,
            raw_events,
            schema,
            headers=headers,
            designator_field=designator_field,
        )
    except ValidationError as exc:
        logger.info(
            "ingest_rejected tenant=%s kind=%s index=%s table=%s column=%s",
            tenant.id,
            exc.code,
            exc.index,
            exc.table,
            exc.column,
        )
        raise

    plans = plan_inserts(rows)
    try:
        ack = await execute(engine, plans)
    except ExecutionError as exc:
        logger.warning(
            "ingest_failed tenant=%s kind=%s table=%s index=%s",
            tenant.id,
            exc.code,
            exc.table,
            exc.row_index,
        )
        raise
    logger.info("ingest_accepted tenant=%s events=%d tables=%d", tenant.id, len(rows), len(plans))
    return ack
