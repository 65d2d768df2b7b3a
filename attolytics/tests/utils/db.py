from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool


async def count_rows(engine: AsyncEngine, table: str) -> int:
    # Table names come from the test schema, never from request data.
    async with engine.connect() as conn:
        result = await conn.execute(text(f"SELECT COUNT(*) FROM {table}"))
        return int(result.scalar_one())


async def fetch_column(engine: AsyncEngine, table: str, column: str) -> list[Any]:
    # Insertion order is rowid order in SQLite.
    async with engine.connect() as conn:
        result = await conn.execute(text(f'SELECT "{column}" FROM {table} ORDER BY rowid'))
        return [row[0] for row in result]


def single_connection_engine(database_url: str, *, pool_timeout: float = 0.2) -> AsyncEngine:
    # One pooled connection that gives up quickly, so a held connection exhausts the pool.
    return create_async_engine(
        database_url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
        pool_timeout=pool_timeout,
    )
