from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import insert
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.dml import Insert

from attolytics.schema.model import Table
from attolytics.services.validator import TypedRow


@dataclass(frozen=True)
class InsertPlan:
    """One multi-row insert for a single table within one request."""

    table: Table
    rows: tuple[TypedRow, ...]

    @property
    def columns(self) -> tuple[str, ...]:
        # Every declared column is bound; columns absent from an event bind NULL.
        return self.table.column_names

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def event_indexes(self) -> tuple[int, ...]:
        return tuple(row.index for row in self.rows)

    def row_parameters(self, row: TypedRow) -> dict[str, Any]:
        supplied = row.as_dict()
        return {name: supplied.get(name) for name in self.columns}

    @property
    def parameters(self) -> list[Any]:
        # Flattened bind values: row by row, each in the table's column order.
        flat: list[Any] = []
        for row in self.rows:
            params = self.row_parameters(row)
            flat.extend(params[name] for name in self.columns)
        return flat

    def statement(self) -> Insert:
        # Values only ever travel as bound parameters.
        return insert(self.table.sql_table).values([self.row_parameters(row) for row in self.rows])

    def single_row_statement(self, row: TypedRow) -> Insert:
        return insert(self.table.sql_table).values(self.row_parameters(row))

    def sql(self, dialect: Dialect | None = None) -> str:
        # Statement template with placeholders, for logs and operator tooling.
        compiled = self.statement().compile(dialect=dialect)
        return str(compiled)


def plan_inserts(rows: Iterable[TypedRow]) -> list[InsertPlan]:
    """Group a request's rows by table into one insert plan per table.

    Plans come out in order of each table's first appearance; rows keep their
    relative submission order inside each plan. Tables without rows never get a
    plan.
    """
    grouped: dict[str, list[TypedRow]] = {}
    tables: dict[str, Table] = {}
    for row in rows:
        name = row.table.name
        if name not in grouped:
            grouped[name] = []
            tables[name] = row.table
        grouped[name].append(row)
    return [InsertPlan(table=tables[name], rows=tuple(group)) for name, group in grouped.items()]
