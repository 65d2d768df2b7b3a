from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

import sqlalchemy as sa

from attolytics.schema.types import ColumnType, sql_type


@dataclass(frozen=True)
class Column:
    name: str
    type: ColumnType
    nullable: bool = False
    # Header-bound columns are filled from the request, never from the event body.
    header: str | None = None


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...]
    sql_table: sa.Table = field(compare=False, repr=False)
    _by_name: Mapping[str, Column] = field(compare=False, repr=False)

    @classmethod
    def build(cls, name: str, columns: Iterable[Column], metadata: sa.MetaData) -> "Table":
        # Column order is declaration order and is also the bind order.
        ordered = tuple(columns)
        sql_table = sa.Table(
            name,
            metadata,
            *(sa.Column(col.name, sql_type(col.type), nullable=col.nullable) for col in ordered),
        )
        return cls(
            name=name,
            columns=ordered,
            sql_table=sql_table,
            _by_name=MappingProxyType({col.name: col for col in ordered}),
        )

    def column(self, name: str) -> Column | None:
        return self._by_name.get(name)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(col.name for col in self.columns)


@dataclass(frozen=True)
class Tenant:
    id: str
    credential: bytes = field(repr=False)
    access_control_allow_origin: str = "*"


@dataclass(frozen=True)
class Schema:
    """Immutable view of tenants, tables and the tenant→table write relation.

    Built once by the loader and shared read-only by every request handler.
    """

    tenants: Mapping[str, Tenant]
    tables: Mapping[str, Table]
    permissions: frozenset[tuple[str, str]]
    metadata: sa.MetaData = field(compare=False, repr=False)

    @classmethod
    def build(
        cls,
        *,
        tenants: Iterable[Tenant],
        tables: Iterable[Table],
        permissions: Iterable[tuple[str, str]],
        metadata: sa.MetaData,
    ) -> "Schema":
        return cls(
            tenants=MappingProxyType({tenant.id: tenant for tenant in tenants}),
            tables=MappingProxyType({table.name: table for table in tables}),
            permissions=frozenset(permissions),
            metadata=metadata,
        )

    def tenant(self, tenant_id: str) -> Tenant | None:
        return self.tenants.get(tenant_id)

    def table(self, name: str) -> Table | None:
        return self.tables.get(name)

    def is_permitted(self, tenant_id: str, table_name: str) -> bool:
        return (tenant_id, table_name) in self.permissions

    def permitted_tables(self, tenant_id: str) -> tuple[str, ...]:
        # Declaration order, for operator-facing listings.
        return tuple(name for name in self.tables if (tenant_id, name) in self.permissions)
