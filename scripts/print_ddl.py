from __future__ import annotations

import argparse
import sys

from sqlalchemy.dialects import postgresql, sqlite

from attolytics.core.config import get_settings
from attolytics.core.errors import SchemaLoadError
from attolytics.persistence.ddl import render_ddl
from attolytics.schema.loader import load_schema


_DIALECTS = {"postgresql": postgresql.dialect, "sqlite": sqlite.dialect}


def _build_parser() -> argparse.ArgumentParser:
    # The output is meant to be reviewed and applied by hand.
    parser = argparse.ArgumentParser(description="Print CREATE TABLE statements for the schema")
    parser.add_argument("-s", "--schema", default=None, help="Path to the schema description (YAML)")
    parser.add_argument("--dialect", choices=sorted(_DIALECTS), default="postgresql")
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    settings = get_settings()
    path = args.schema or settings.schema_path
    try:
        schema = load_schema(path, designator_field=settings.table_designator_field)
    except SchemaLoadError as exc:
        print(f"{path}: {exc.reason}: {exc.message}", file=sys.stderr)
        return 1
    for statement in render_ddl(schema, _DIALECTS[args.dialect]()):
        print(statement)
        print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
