from __future__ import annotations

from sqlalchemy.engine import Dialect
from sqlalchemy.schema import CreateTable

from attolytics.schema.model import Schema


def render_ddl(schema: Schema, dialect: Dialect | None = None) -> list[str]:
    # Render CREATE TABLE statements for operators; the service never executes DDL.
    statements: list[str] = []
    for table in schema.tables.values():
        ddl = CreateTable(table.sql_table, if_not_exists=True).compile(dialect=dialect)
        statements.append(str(ddl).strip() + ";")
    return statements
