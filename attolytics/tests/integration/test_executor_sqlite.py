from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

from attolytics.core.errors import ConnectionFailed, PoolTimeout, StatementFailed
from attolytics.persistence.db import pool_stats
from attolytics.services.executor import execute
from attolytics.services.planner import plan_inserts
from attolytics.services.validator import validate_batch
from attolytics.tests.utils.db import count_rows, fetch_column, single_connection_engine


async def _unique_players(engine) -> None:
    # The schema file cannot declare constraints; add one directly to force driver failures.
    async with engine.begin() as conn:
        await conn.execute(text("CREATE UNIQUE INDEX uq_scores_player ON scores (player)"))


def _plans(schema, events):
    return plan_inserts(validate_batch(schema.tenant("t1"), events, schema))


@pytest.mark.asyncio
async def test_execute_commits_every_plan(schema, engine) -> None:
    plans = _plans(
        schema,
        [
            {"_t": "game_events", "timestamp": 1, "event_type": "a"},
            {"_t": "scores", "player": "ada", "points": 10, "meta": {"level": 2}},
            {"_t": "game_events", "timestamp": 2, "event_type": "b", "score": 5},
        ],
    )
    ack = await execute(engine, plans)
    assert dict(ack.inserted) == {"game_events": 2, "scores": 1}
    assert ack.total == 3
    assert await fetch_column(engine, "game_events", "event_type") == ["a", "b"]
    assert await fetch_column(engine, "game_events", "score") == [None, 5]
    assert pool_stats(engine)["checked_out"] == 0


@pytest.mark.asyncio
async def test_failure_in_later_plan_rolls_back_earlier_plans(schema, engine) -> None:
    await _unique_players(engine)
    plans = _plans(
        schema,
        [
            {"_t": "game_events", "timestamp": 1, "event_type": "a"},
            {"_t": "scores", "player": "ada", "points": 1},
            {"_t": "scores", "player": "bob", "points": 2},
            {"_t": "scores", "player": "ada", "points": 3},
        ],
    )
    with pytest.raises(StatementFailed) as excinfo:
        await execute(engine, plans)
    error = excinfo.value
    assert error.table == "scores"
    assert error.row_index == 3
    assert error.retryable is True
    assert "ada" not in error.message
    assert await count_rows(engine, "game_events") == 0
    assert await count_rows(engine, "scores") == 0
    assert pool_stats(engine)["checked_out"] == 0


@pytest.mark.asyncio
async def test_conflict_with_existing_row_is_located(schema, engine) -> None:
    await _unique_players(engine)
    await execute(engine, _plans(schema, [{"_t": "scores", "player": "ada", "points": 1}]))

    plans = _plans(
        schema,
        [
            {"_t": "scores", "player": "cy", "points": 2},
            {"_t": "scores", "player": "ada", "points": 3},
        ],
    )
    with pytest.raises(StatementFailed) as excinfo:
        await execute(engine, plans)
    assert excinfo.value.row_index == 1
    assert await fetch_column(engine, "scores", "player") == ["ada"]


@pytest.mark.asyncio
async def test_single_row_plan_failure_reports_that_row(schema, engine) -> None:
    await _unique_players(engine)
    await execute(engine, _plans(schema, [{"_t": "scores", "player": "ada", "points": 1}]))

    plans = _plans(
        schema,
        [
            {"_t": "game_events", "timestamp": 1, "event_type": "a"},
            {"_t": "scores", "player": "ada", "points": 2},
        ],
    )
    with pytest.raises(StatementFailed) as excinfo:
        await execute(engine, plans)
    assert excinfo.value.row_index == 1
    assert await count_rows(engine, "game_events") == 0


@pytest.mark.asyncio
async def test_absent_and_null_json_values_are_sql_null(schema, engine) -> None:
    plans = _plans(
        schema,
        [
            {"_t": "scores", "player": "ada", "points": 1},
            {"_t": "scores", "player": "bob", "points": 2, "meta": None},
            {"_t": "scores", "player": "cy", "points": 3, "meta": {"level": 2}},
        ],
    )
    await execute(engine, plans)
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT player FROM scores WHERE meta IS NULL ORDER BY rowid"))
        assert [row[0] for row in result] == ["ada", "bob"]


@pytest.mark.asyncio
async def test_exhausted_pool_times_out(schema, engine, settings) -> None:
    bounded = single_connection_engine(settings.database_url)
    plans = _plans(schema, [{"_t": "game_events", "timestamp": 1, "event_type": "a"}])
    try:
        async with bounded.connect() as held:
            await held.execute(text("SELECT 1"))
            with pytest.raises(PoolTimeout) as excinfo:
                await execute(bounded, plans)
        assert excinfo.value.code == "DB_POOL_TIMEOUT"
        assert excinfo.value.retryable is True
        assert pool_stats(bounded)["checked_out"] == 0
        # The slot is usable again once the holder lets go.
        ack = await execute(bounded, plans)
        assert ack.total == 1
    finally:
        await bounded.dispose()


@pytest.mark.asyncio
async def test_unreachable_database_is_connection_failure(schema, tmp_path) -> None:
    broken = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'events.db'}")
    plans = _plans(schema, [{"_t": "game_events", "timestamp": 1, "event_type": "a"}])
    try:
        with pytest.raises(ConnectionFailed) as excinfo:
            await execute(broken, plans)
        assert excinfo.value.code == "DB_CONNECTION_FAILED"
    finally:
        await broken.dispose()


@pytest.mark.asyncio
async def test_cancellation_mid_transaction_rolls_back(schema, engine, monkeypatch) -> None:
    plans = _plans(
        schema,
        [
            {"_t": "game_events", "timestamp": 1, "event_type": "a"},
            {"_t": "scores", "player": "ada", "points": 1},
        ],
    )
    original_execute = AsyncConnection.execute
    second_insert_started = asyncio.Event()
    calls = {"count": 0}

    async def stalled_execute(self, statement, *args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            # The first insert has run inside the open transaction; hold the second one.
            second_insert_started.set()
            await asyncio.Event().wait()
        return await original_execute(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncConnection, "execute", stalled_execute)
    task = asyncio.create_task(execute(engine, plans))
    await asyncio.wait_for(second_insert_started.wait(), timeout=5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    monkeypatch.undo()

    assert calls["count"] == 2
    assert await count_rows(engine, "game_events") == 0
    assert await count_rows(engine, "scores") == 0
    assert pool_stats(engine)["checked_out"] == 0
