"""
SQLAlchemy engine factory and serializable transaction runner.

The engine is built explicitly by the application (or a script) at process
start and passed into every service. Nothing here connects at import time.

All ledger writes go through run_serializable(): conflict detection and the
write it guards happen in one SERIALIZABLE transaction, so of two concurrent
overlapping bookings exactly one commits and the other, on retry, sees the
winner and fails with a conflict. SQLite (local runs and tests) gets the same
guarantee from BEGIN IMMEDIATE, which serializes writers on the database lock.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, TypeVar

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError

from booking_ledger.config import TRANSACTION_MAX_ATTEMPTS
from booking_ledger.metrics import transaction_retries

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# SQLSTATE serialization_failure and deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine for the ledger.

    PostgreSQL gets a production connection pool. SQLite connections are put
    in driver-level autocommit mode so that SQLAlchemy's begin event can issue
    BEGIN IMMEDIATE itself.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log emitted SQL

    Returns:
        Engine: configured engine
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _enable_sqlite_immediate_transactions(engine)
        return engine

    return create_engine(
        database_url,
        # Connection pool settings
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


def _enable_sqlite_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Stop pysqlite from emitting its own BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def is_serialization_failure(err: DBAPIError) -> bool:
    """
    Return True if the database aborted the transaction to preserve serializability.

    Args:
        err: Wrapped DBAPI error raised by SQLAlchemy

    Returns:
        bool: True for retryable serialization/deadlock/lock-timeout failures
    """
    orig = getattr(err, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig or err).lower()


def run_serializable(
    engine: Engine,
    fn: Callable[[Connection], T],
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run ``fn(conn)`` inside one SERIALIZABLE transaction.

    The transaction commits when fn returns and rolls back when it raises.
    Serialization failures are retried with a short backoff; every other
    exception (including domain errors such as a date conflict) propagates on
    the first attempt. Because a failed attempt leaves nothing behind, the
    retried attempt re-reads and reaches a deterministic outcome.

    Args:
        engine: SQLAlchemy engine
        fn: Unit of work receiving the transactional connection
        max_attempts: Override for TRANSACTION_MAX_ATTEMPTS

    Returns:
        Whatever fn returns

    Raises:
        DBAPIError: When serialization keeps failing after all attempts
    """
    attempts = max_attempts or TRANSACTION_MAX_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            with engine.connect() as conn:
                if engine.dialect.name == "postgresql":
                    conn.execution_options(isolation_level="SERIALIZABLE")
                with conn.begin():
                    return fn(conn)
        except DBAPIError as e:
            if attempt >= attempts or not is_serialization_failure(e):
                raise
            transaction_retries.inc()
            logger.warning("transaction_retry", attempt=attempt, error=str(e.orig))
            time.sleep(0.05 * attempt)

    raise RuntimeError("unreachable")  # pragma: no cover


def check_engine_health(engine: Engine) -> bool:
    """
    Check if the database is reachable.

    Used by the /ready endpoint before allowing traffic to the service.

    Args:
        engine: SQLAlchemy engine

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
