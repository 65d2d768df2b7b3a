from __future__ import annotations

import pytest

from attolytics.core.errors import SchemaLoadError
from attolytics.schema.loader import build_schema, load_schema, parse_schema
from attolytics.schema.types import ColumnType
from attolytics.tests.utils.schemas import SCHEMA_YAML


def _document(**overrides) -> dict:
    document = {
        "tenants": [{"id": "t1", "credential": "secret", "tables": ["events"]}],
        "tables": [
            {
                "name": "events",
                "columns": [
                    {"name": "kind", "type": "string"},
                    {"name": "value", "type": "i64", "nullable": True},
                ],
            }
        ],
    }
    document.update(overrides)
    return document


def _reason(document) -> str:
    with pytest.raises(SchemaLoadError) as excinfo:
        build_schema(document)
    return excinfo.value.reason


def test_parse_schema_builds_tenants_tables_and_permissions() -> None:
    schema = parse_schema(SCHEMA_YAML)
    assert list(schema.tenants) == ["t1", "t2"]
    assert list(schema.tables) == ["game_events", "page_views", "scores"]
    game_events = schema.table("game_events")
    assert game_events.column_names == ("timestamp", "event_type", "score")
    assert game_events.column("timestamp").type is ColumnType.I64
    assert game_events.column("timestamp").nullable is False
    assert game_events.column("score").nullable is True
    assert schema.is_permitted("t1", "game_events")
    assert not schema.is_permitted("t2", "game_events")
    assert schema.permitted_tables("t2") == ("page_views",)
    assert schema.tenant("t2").access_control_allow_origin == "https://app.example.com"
    assert schema.tenant("t1").access_control_allow_origin == "*"
    assert schema.table("page_views").column("user_agent").header == "User-Agent"


def test_tenant_repr_hides_credential() -> None:
    schema = parse_schema(SCHEMA_YAML)
    assert "s1-secret" not in repr(schema.tenant("t1"))


def test_wildcard_grants_every_table() -> None:
    document = _document(
        tables=_document()["tables"] + [{"name": "other", "columns": [{"name": "a", "type": "bool"}]}],
        tenants=[{"id": "ops", "credential": "x", "tables": "*"}],
    )
    schema = build_schema(document)
    assert schema.permitted_tables("ops") == ("events", "other")


def test_duplicate_tenant_is_rejected() -> None:
    tenant = {"id": "t1", "credential": "secret", "tables": []}
    assert _reason(_document(tenants=[tenant, dict(tenant)])) == SchemaLoadError.DUPLICATE_TENANT


def test_duplicate_table_is_rejected() -> None:
    table = _document()["tables"][0]
    assert _reason(_document(tables=[table, dict(table)])) == SchemaLoadError.DUPLICATE_TABLE


def test_duplicate_column_is_rejected() -> None:
    columns = [{"name": "kind", "type": "string"}, {"name": "kind", "type": "i32"}]
    document = _document(tables=[{"name": "events", "columns": columns}])
    assert _reason(document) == SchemaLoadError.DUPLICATE_COLUMN


def test_unknown_type_is_rejected() -> None:
    document = _document(tables=[{"name": "events", "columns": [{"name": "kind", "type": "uuid"}]}])
    assert _reason(document) == SchemaLoadError.UNKNOWN_TYPE


def test_unknown_table_reference_is_rejected() -> None:
    document = _document(tenants=[{"id": "t1", "credential": "secret", "tables": ["missing"]}])
    assert _reason(document) == SchemaLoadError.UNKNOWN_TABLE_REFERENCE


@pytest.mark.parametrize(
    "document",
    [
        None,
        [],
        {"tenants": []},
        {"tables": [], "tenants": {}},
        {"tables": [{"name": "events", "columns": []}], "tenants": []},
        {"tables": [{"name": "events", "columns": [{"name": "_t", "type": "string"}]}], "tenants": []},
        {"tables": [{"name": "e", "columns": [{"name": "a", "type": "i32", "nullable": "yes"}]}], "tenants": []},
        {"tables": [{"name": "e", "columns": [{"name": "a", "type": "i32", "header": "X-A"}]}], "tenants": []},
        {"tables": [], "tenants": [{"id": "t1", "credential": "", "tables": []}]},
        {"tables": [], "tenants": [{"id": "t1", "credential": "x", "tables": "all"}]},
    ],
)
def test_malformed_descriptions_are_rejected(document) -> None:
    assert _reason(document) == SchemaLoadError.MALFORMED


def test_invalid_yaml_is_malformed() -> None:
    with pytest.raises(SchemaLoadError) as excinfo:
        parse_schema("tables: [unclosed")
    assert excinfo.value.reason == SchemaLoadError.MALFORMED


def test_load_schema_reads_file(tmp_path) -> None:
    path = tmp_path / "schema.conf.yaml"
    path.write_text(SCHEMA_YAML, encoding="utf-8")
    schema = load_schema(path)
    assert set(schema.tables) == {"game_events", "page_views", "scores"}


def test_missing_file_is_malformed(tmp_path) -> None:
    with pytest.raises(SchemaLoadError) as excinfo:
        load_schema(tmp_path / "absent.yaml")
    assert excinfo.value.reason == SchemaLoadError.MALFORMED
