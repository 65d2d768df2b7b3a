from __future__ import annotations

import argparse
import sys

import uvicorn

from attolytics.apps.api.main import create_app
from attolytics.core.config import Settings
from attolytics.core.errors import SchemaLoadError
from attolytics.core.logging import verbosity_to_level


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the Attolytics event ingestion API")
    parser.add_argument("-s", "--schema", default=None, help="Path to the schema description (YAML)")
    parser.add_argument("-d", "--db-url", default=None, help="SQLAlchemy database URL")
    parser.add_argument("--host", default=None, help="Interface to bind")
    parser.add_argument("-p", "--port", type=int, default=None, help="Port to bind")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (repeatable)")
    parser.add_argument("-q", "--quiet", action="count", default=0, help="Less logging (repeatable)")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    # Command-line flags win over the environment and .env.
    overrides: dict[str, object] = {}
    if args.schema:
        overrides["schema_path"] = args.schema
    if args.db_url:
        overrides["database_url"] = args.db_url
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.verbose or args.quiet:
        overrides["log_level"] = verbosity_to_level(args.verbose, args.quiet)
    return Settings(**overrides)


def main() -> int:
    args = _build_parser().parse_args()
    settings = _settings_from_args(args)
    try:
        app = create_app(settings=settings)
    except SchemaLoadError as exc:
        print(f"schema error ({exc.reason}): {exc.message}", file=sys.stderr)
        return 2
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
