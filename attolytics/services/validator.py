from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from attolytics.core.config import TABLE_DESIGNATOR_FIELD
from attolytics.core.errors import (
    MissingRequiredColumn,
    MissingTableDesignator,
    TableNotPermitted,
    TypeMismatch,
    UnknownColumn,
    UnknownTable,
)
from attolytics.schema.model import Schema, Table, Tenant
from attolytics.schema.types import CoercionError, coerce


@dataclass(frozen=True)
class TypedRow:
    # Only built from events that passed every check; values follow table column order.
    table: Table
    values: tuple[tuple[str, Any], ...]
    # Position of the source event within its request.
    index: int = 0

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(name for name, _value in self.values)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.values)


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    # HTTP header names are case-insensitive.
    if not headers:
        return {}
    return {str(key).lower(): value for key, value in headers.items()}


def validate(
    tenant: Tenant,
    raw_event: Any,
    schema: Schema,
    *,
    index: int = 0,
    headers: Mapping[str, str] | None = None,
    designator_field: str = TABLE_DESIGNATOR_FIELD,
) -> TypedRow:
    """Check one raw event against the schema and build its typed row.

    Checks run in a fixed order and stop at the first failure, so the raised
    error names the earliest problem: table designator, table lookup, tenant
    permission, unknown fields, missing required columns, then value types.
    Pure: the same inputs always produce the same row or the same error.
    """
    if not isinstance(raw_event, Mapping):
        raise MissingTableDesignator(designator_field, index=index)
    table_name = raw_event.get(designator_field)
    if not isinstance(table_name, str):
        raise MissingTableDesignator(designator_field, index=index)

    table = schema.table(table_name)
    if table is None:
        raise UnknownTable(table_name, index=index)
    # Authorization is decided before any column-level work.
    if not schema.is_permitted(tenant.id, table.name):
        raise TableNotPermitted(table.name, tenant_id=tenant.id, index=index)

    for field_name in raw_event:
        if field_name == designator_field:
            continue
        column = table.column(field_name)
        # Header-bound columns cannot be supplied through the event body.
        if column is None or column.header is not None:
            raise UnknownColumn(str(field_name), table=table.name, index=index)

    request_headers = _normalize_headers(headers)
    present: dict[str, Any] = {}
    for column in table.columns:
        if column.header is not None:
            supplied = column.header.lower() in request_headers
            value = request_headers.get(column.header.lower())
        else:
            supplied = column.name in raw_event
            value = raw_event.get(column.name)
        if value is None and not column.nullable:
            raise MissingRequiredColumn(column.name, table=table.name, index=index)
        if supplied:
            present[column.name] = value

    values: list[tuple[str, Any]] = []
    for column in table.columns:
        if column.name not in present:
            continue
        value = present[column.name]
        if value is not None:
            try:
                value = coerce(column.type, value)
            except CoercionError as exc:
                raise TypeMismatch(
                    column.name,
                    column.type.value,
                    exc.actual_shape,
                    table=table.name,
                    index=index,
                ) from exc
        values.append((column.name, value))

    return TypedRow(table=table, values=tuple(values), index=index)


def validate_batch(
    tenant: Tenant,
    raw_events: Iterable[Any],
    schema: Schema,
    *,
    headers: Mapping[str, str] | None = None,
    designator_field: str = TABLE_DESIGNATOR_FIELD,
) -> list[TypedRow]:
    # Fail fast: the first invalid event rejects the whole batch.
    return [
        validate(
            tenant,
            raw_event,
            schema,
            index=index,
            headers=headers,
            designator_field=designator_field,
        )
        for index, raw_event in enumerate(raw_events)
    ]
