from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import logging
import re
from types import MappingProxyType
from typing import AsyncIterator, Mapping, Sequence

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

from attolytics.core.errors import (
    CommitFailed,
    ConnectionFailed,
    PoolTimeout,
    StatementFailed,
)
from attolytics.services.planner import InsertPlan


logger = logging.getLogger(__name__)

_CLASS_PREFIX = re.compile(r"^<class '[^']+'>:\s*")
# Driver messages that quote the rejected literal are cut before the literal.
_QUOTED_INPUT = re.compile(r"(invalid input (?:syntax|value) for (?:type|enum) [\w .]+?):.*$", re.IGNORECASE)
_DROP_LINE_PREFIXES = ("[SQL:", "[parameters:", "DETAIL:", "(Background on")


@dataclass(frozen=True)
class Ack:
    # Rows committed per table, in plan order.
    inserted: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def total(self) -> int:
        return sum(self.inserted.values())


def sanitize_db_error(exc: BaseException) -> str:
    """Reduce a database error to text that is safe for logs and responses.

    Keeps the driver's first message line and drops anything that may carry
    bound parameter values.
    """
    source = getattr(exc, "orig", None) or exc
    text = str(source).strip()
    kept: list[str] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(_DROP_LINE_PREFIXES):
            break
        kept.append(stripped)
        break
    message = _CLASS_PREFIX.sub("", kept[0]) if kept else ""
    message = _QUOTED_INPUT.sub(r"\1", message)
    return f"{type(source).__name__}: {message}" if message else type(source).__name__


@asynccontextmanager
async def _checkout(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    # Only a started connection holds a pool slot; it always goes back, whatever
    # happens in the body.
    conn = engine.connect()
    try:
        await conn.start()
    except sa_exc.TimeoutError as exc:
        raise PoolTimeout("Timed out waiting for a database connection") from exc
    except (sa_exc.DBAPIError, OSError) as exc:
        raise ConnectionFailed(f"Could not connect to the database: {sanitize_db_error(exc)}") from exc
    try:
        yield conn
    finally:
        await conn.close()


async def execute(engine: AsyncEngine, plans: Sequence[InsertPlan]) -> Ack:
    """Apply every plan of one request inside a single transaction.

    Commits only when every plan succeeds. On any failure the transaction is
    rolled back, nothing from the request stays visible, and an
    ``ExecutionError`` names the failing table and event. Cancellation rolls
    back the same way before propagating.
    """
    if not plans:
        return Ack()

    async with _checkout(engine) as conn:
        # -1 while opening the transaction, None once every plan has run.
        failed_position: int | None = -1
        try:
            async with conn.begin():
                for position, plan in enumerate(plans):
                    failed_position = position
                    await conn.execute(plan.statement())
                failed_position = None
        except sa_exc.SQLAlchemyError as exc:
            message = sanitize_db_error(exc)
            if failed_position == -1:
                logger.warning("insert_begin_failed plans=%d error=%s", len(plans), message)
                raise ConnectionFailed(f"Could not open a transaction: {message}") from exc
            if failed_position is None:
                logger.warning("insert_commit_failed plans=%d error=%s", len(plans), message)
                raise CommitFailed(f"Commit failed: {message}") from exc
            plan = plans[failed_position]
            row_index = await _locate_failing_row(conn, plans, failed_position)
            logger.warning(
                "insert_failed table=%s event_index=%s error=%s",
                plan.table.name,
                row_index,
                message,
            )
            raise StatementFailed(
                f"Insert into '{plan.table.name}' failed: {message}",
                table=plan.table.name,
                row_index=row_index,
            ) from exc

    inserted = MappingProxyType({plan.table.name: plan.row_count for plan in plans})
    logger.info("insert_committed tables=%d rows=%d", len(plans), sum(inserted.values()))
    return Ack(inserted=inserted)


async def _locate_failing_row(
    conn: AsyncConnection, plans: Sequence[InsertPlan], failed_position: int
) -> int | None:
    # Diagnosis only: replay earlier plans, then insert the failing plan row by
    # row in a throwaway transaction that is always rolled back.
    plan = plans[failed_position]
    if plan.row_count == 1:
        return plan.rows[0].index
    if conn.invalidated:
        return None
    try:
        trans = await conn.begin()
    except sa_exc.SQLAlchemyError:
        logger.warning("insert_diagnosis_unavailable table=%s", plan.table.name)
        return None
    try:
        for earlier in plans[:failed_position]:
            await conn.execute(earlier.statement())
        for row in plan.rows:
            try:
                await conn.execute(plan.single_row_statement(row))
            except sa_exc.SQLAlchemyError:
                return row.index
        return None
    except sa_exc.SQLAlchemyError:
        return None
    finally:
        await _rollback_quietly(trans, plan.table.name)


async def _rollback_quietly(trans: AsyncTransaction, table_name: str) -> None:
    try:
        await trans.rollback()
    except sa_exc.SQLAlchemyError as exc:
        logger.warning("insert_diagnosis_rollback_failed table=%s error=%s", table_name, sanitize_db_error(exc))

