"""
Schema description loading.

Parses the declarative YAML description of tenants, tables and write
permissions into an immutable ``Schema``. Any inconsistency fails the whole
load; the process must not serve with a partially valid schema.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import sqlalchemy as sa
import yaml

from attolytics.core.config import TABLE_DESIGNATOR_FIELD
from attolytics.core.errors import SchemaLoadError
from attolytics.schema.model import Column, Schema, Table, Tenant
from attolytics.schema.types import ColumnType, parse_type_token


logger = logging.getLogger(__name__)

ALL_TABLES = "*"


def load_schema(path: str | Path, *, designator_field: str = TABLE_DESIGNATOR_FIELD) -> Schema:
    """Read and validate the schema file at ``path``."""
    schema_path = Path(path)
    try:
        text = schema_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SchemaLoadError(
            SchemaLoadError.MALFORMED, f"failed to read schema file {schema_path}: {exc}"
        ) from exc
    schema = parse_schema(text, designator_field=designator_field)
    logger.info(
        "schema_loaded path=%s tenants=%d tables=%d",
        schema_path,
        len(schema.tenants),
        len(schema.tables),
    )
    return schema


def parse_schema(text: str, *, designator_field: str = TABLE_DESIGNATOR_FIELD) -> Schema:
    """Parse YAML text into a validated schema."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SchemaLoadError(SchemaLoadError.MALFORMED, f"invalid YAML: {exc}") from exc
    return build_schema(document, designator_field=designator_field)


def build_schema(document: Any, *, designator_field: str = TABLE_DESIGNATOR_FIELD) -> Schema:
    """Validate an already-decoded description and build the schema model."""
    if not isinstance(document, Mapping):
        raise _malformed("schema description must be a mapping with 'tenants' and 'tables'")
    raw_tables = _require_list(document, "tables", "schema")
    raw_tenants = _require_list(document, "tenants", "schema")

    metadata = sa.MetaData()
    tables: dict[str, Table] = {}
    for position, raw_table in enumerate(raw_tables):
        name, columns = _parse_table(raw_table, position, designator_field)
        if name in tables:
            raise SchemaLoadError(SchemaLoadError.DUPLICATE_TABLE, f"duplicate table name '{name}'")
        # Duplicates are rejected before registering the table on the shared metadata.
        tables[name] = Table.build(name, columns, metadata)

    tenants: dict[str, Tenant] = {}
    permissions: set[tuple[str, str]] = set()
    for position, raw_tenant in enumerate(raw_tenants):
        tenant, permitted = _build_tenant(raw_tenant, position, tables)
        if tenant.id in tenants:
            raise SchemaLoadError(
                SchemaLoadError.DUPLICATE_TENANT, f"duplicate tenant id '{tenant.id}'"
            )
        tenants[tenant.id] = tenant
        permissions.update((tenant.id, name) for name in permitted)

    return Schema.build(
        tenants=tenants.values(),
        tables=tables.values(),
        permissions=permissions,
        metadata=metadata,
    )


def _parse_table(raw: Any, position: int, designator_field: str) -> tuple[str, list[Column]]:
    where = f"tables[{position}]"
    if not isinstance(raw, Mapping):
        raise _malformed(f"{where} must be a mapping")
    name = _require_name(raw, "name", where)
    where = f"table '{name}'"
    raw_columns = _require_list(raw, "columns", where)
    if not raw_columns:
        raise _malformed(f"{where} declares no columns")

    columns: list[Column] = []
    seen: set[str] = set()
    for column_position, raw_column in enumerate(raw_columns):
        column = _build_column(raw_column, f"{where} columns[{column_position}]", designator_field)
        if column.name in seen:
            raise SchemaLoadError(
                SchemaLoadError.DUPLICATE_COLUMN,
                f"duplicate column name '{column.name}' in table '{name}'",
            )
        seen.add(column.name)
        columns.append(column)
    return name, columns


def _build_column(raw: Any, where: str, designator_field: str) -> Column:
    if not isinstance(raw, Mapping):
        raise _malformed(f"{where} must be a mapping")
    name = _require_name(raw, "name", where)
    if name == designator_field:
        raise _malformed(f"{where} uses the reserved name '{designator_field}'")
    token = raw.get("type")
    column_type = parse_type_token(token)
    if column_type is None:
        raise SchemaLoadError(
            SchemaLoadError.UNKNOWN_TYPE, f"{where} ('{name}') has unknown type {token!r}"
        )
    nullable = raw.get("nullable", False)
    if not isinstance(nullable, bool):
        raise _malformed(f"{where} ('{name}') nullable must be true or false")
    header = raw.get("header")
    if header is not None:
        if not isinstance(header, str) or not header.strip():
            raise _malformed(f"{where} ('{name}') header must be a non-empty string")
        if column_type is not ColumnType.STRING:
            raise _malformed(f"{where} ('{name}') header columns must have type string")
        header = header.strip()
    return Column(name=name, type=column_type, nullable=nullable, header=header)


def _build_tenant(
    raw: Any, position: int, tables: Mapping[str, Table]
) -> tuple[Tenant, tuple[str, ...]]:
    where = f"tenants[{position}]"
    if not isinstance(raw, Mapping):
        raise _malformed(f"{where} must be a mapping")
    tenant_id = _require_name(raw, "id", where)
    where = f"tenant '{tenant_id}'"
    credential = raw.get("credential")
    if not isinstance(credential, str) or not credential:
        raise _malformed(f"{where} credential must be a non-empty string")
    origin = raw.get("access_control_allow_origin", "*")
    if not isinstance(origin, str) or not origin:
        raise _malformed(f"{where} access_control_allow_origin must be a non-empty string")

    raw_permitted = raw.get("tables")
    if raw_permitted == ALL_TABLES:
        permitted = tuple(tables)
    elif isinstance(raw_permitted, list):
        names: list[str] = []
        for entry in raw_permitted:
            if not isinstance(entry, str):
                raise _malformed(f"{where} tables entries must be strings")
            if entry not in tables:
                raise SchemaLoadError(
                    SchemaLoadError.UNKNOWN_TABLE_REFERENCE,
                    f"{where} references undeclared table '{entry}'",
                )
            names.append(entry)
        permitted = tuple(names)
    else:
        raise _malformed(f"{where} tables must be a list of table names or '{ALL_TABLES}'")

    tenant = Tenant(
        id=tenant_id,
        credential=credential.encode("utf-8"),
        access_control_allow_origin=origin,
    )
    return tenant, permitted


def _require_list(raw: Mapping[str, Any], key: str, where: str) -> list[Any]:
    value = raw.get(key)
    if not isinstance(value, list):
        raise _malformed(f"{where} '{key}' must be a list")
    return value


def _require_name(raw: Mapping[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise _malformed(f"{where} '{key}' must be a non-empty string")
    return value


def _malformed(message: str) -> SchemaLoadError:
    return SchemaLoadError(SchemaLoadError.MALFORMED, message)
