from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.dialects import sqlite

from attolytics.apps.api.main import create_app
from attolytics.core.config import Settings, get_settings
from attolytics.persistence.db import build_engine
from attolytics.persistence.ddl import render_ddl
from attolytics.schema.loader import parse_schema
from attolytics.schema.model import Schema
from attolytics.tests.utils.schemas import SCHEMA_YAML


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    # Settings are cached per process; tests that patch the environment need a fresh read.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def schema() -> Schema:
    return parse_schema(SCHEMA_YAML)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'events.db'}",
        schema_path=str(tmp_path / "unused.yaml"),
        log_level="DEBUG",
    )


@pytest.fixture
async def engine(schema: Schema, settings: Settings):
    # A throwaway SQLite file per test; tables come from the same DDL operators apply.
    engine = build_engine(settings)
    async with engine.begin() as conn:
        for statement in render_ddl(schema, sqlite.dialect()):
            await conn.exec_driver_sql(statement)
    yield engine
    await engine.dispose()


@pytest.fixture
def app(schema: Schema, engine, settings: Settings):
    return create_app(schema=schema, engine=engine, settings=settings)


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
