from __future__ import annotations

import argparse
import sys

from attolytics.core.config import get_settings
from attolytics.core.errors import SchemaLoadError
from attolytics.core.logging import configure_logging
from attolytics.schema.loader import load_schema


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Validate a schema description without starting the API")
    parser.add_argument("-s", "--schema", default=None, help="Path to the schema description (YAML)")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    settings = get_settings()
    configure_logging(settings.log_level)
    path = args.schema or settings.schema_path
    try:
        schema = load_schema(path, designator_field=settings.table_designator_field)
    except SchemaLoadError as exc:
        print(f"{path}: {exc.reason}: {exc.message}", file=sys.stderr)
        return 1
    for tenant_id in schema.tenants:
        tables = ", ".join(schema.permitted_tables(tenant_id)) or "-"
        print(f"tenant {tenant_id}: {tables}")
    for table in schema.tables.values():
        print(f"table {table.name}: {len(table.columns)} columns")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
