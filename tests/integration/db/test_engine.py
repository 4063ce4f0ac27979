"""
Integration tests for the engine factory and the serializable transaction runner.
"""

from __future__ import annotations

from unittest.mock import MagicMock, Mock, patch

import pytest
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from booking_ledger.db.engine import check_engine_health, run_serializable


def locked_error() -> OperationalError:
    return OperationalError("INSERT ...", {}, Exception("database is locked"))


@pytest.mark.integration
def test_run_serializable_commits(engine: Engine) -> None:
    """Test that the unit of work is committed when it returns."""

    def work(conn: Connection) -> int:
        conn.execute(text("CREATE TABLE scratch (id INTEGER)"))
        conn.execute(text("INSERT INTO scratch VALUES (1)"))
        return 7

    assert run_serializable(engine, work) == 7
    with engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM scratch")).scalar_one() == 1


@pytest.mark.integration
def test_run_serializable_rolls_back_on_error(engine: Engine) -> None:
    """Test that a raising unit of work leaves nothing behind and is not retried."""
    calls = []

    def work(conn: Connection) -> None:
        calls.append(1)
        conn.execute(text("CREATE TABLE scratch (id INTEGER)"))
        raise ValueError("conflict")

    with pytest.raises(ValueError):
        run_serializable(engine, work)

    assert len(calls) == 1
    assert check_engine_health(engine)
    with engine.connect() as conn:
        tables = conn.execute(
            text("SELECT name FROM sqlite_master WHERE name = 'scratch'")
        ).all()
    assert tables == []


@pytest.mark.integration
@patch("booking_ledger.db.engine.time.sleep")
def test_run_serializable_retries_lock_errors(mock_sleep: Mock, engine: Engine) -> None:
    """
    Test that a serialization failure is retried with a fresh transaction.

    Args:
        mock_sleep (Mock): Mocked backoff sleep.
        engine (Engine): SQLite test engine.
    """
    attempts = []

    def work(conn: Connection) -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise locked_error()
        return "done"

    assert run_serializable(engine, work, max_attempts=5) == "done"
    assert len(attempts) == 3
    assert mock_sleep.call_count == 2


@pytest.mark.integration
@patch("booking_ledger.db.engine.time.sleep")
def test_run_serializable_gives_up(mock_sleep: Mock, engine: Engine) -> None:
    """Test that the last serialization failure propagates."""

    def work(conn: Connection) -> None:
        raise locked_error()

    with pytest.raises(OperationalError):
        run_serializable(engine, work, max_attempts=2)

    assert mock_sleep.call_count == 1


@pytest.mark.integration
def test_check_engine_health_failure() -> None:
    """Test that an unreachable database is reported as unhealthy."""
    engine = MagicMock()
    engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("refused"))

    assert check_engine_health(engine) is False
