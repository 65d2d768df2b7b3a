from __future__ import annotations

import pytest
from sqlalchemy import exc as sa_exc

from attolytics.services.executor import Ack, execute, sanitize_db_error


@pytest.mark.asyncio
async def test_empty_plan_list_skips_the_database() -> None:
    ack = await execute(None, [])  # type: ignore[arg-type]
    assert ack == Ack()
    assert ack.total == 0


def test_sanitize_keeps_driver_message_only() -> None:
    error = sa_exc.IntegrityError(
        "INSERT INTO scores (player, points) VALUES (?, ?)",
        ("ada", 1),
        Exception("UNIQUE constraint failed: scores.player"),
    )
    text = sanitize_db_error(error)
    assert text == "Exception: UNIQUE constraint failed: scores.player"
    assert "ada" not in text


def test_sanitize_drops_detail_and_quoted_values() -> None:
    orig = Exception(
        "<class 'asyncpg.exceptions.UniqueViolationError'>: duplicate key value violates unique "
        'constraint "uq_scores_player"\nDETAIL:  Key (player)=(ada) already exists.'
    )
    assert sanitize_db_error(sa_exc.IntegrityError("stmt", None, orig)) == (
        'Exception: duplicate key value violates unique constraint "uq_scores_player"'
    )
    orig = Exception('invalid input syntax for type integer: "card-4111"')
    assert sanitize_db_error(sa_exc.DataError("stmt", None, orig)) == (
        "Exception: invalid input syntax for type integer"
    )


def test_sanitize_without_driver_error() -> None:
    assert sanitize_db_error(ValueError("boom\n[SQL: INSERT INTO x]")) == "ValueError: boom"
