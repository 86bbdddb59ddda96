"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` and provides the helpers used by the application
and tests: table creation, the per-request session dependency and the
`atomic` transaction block used by multi-step writes.
"""

import logging
import time
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, Session, create_engine

from .config import settings
from .errors import TransactionTimeoutError

logger = logging.getLogger("thesis_api.database")

QUERY_CANCELED = "57014"


def _enable_sqlite_foreign_keys(dbapi_connection, _record):
    # SQLite ignores REFERENCES clauses unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str):
    """Create an engine for `url`.

    SQLite gets foreign key enforcement so that deleting a referenced row
    fails the same way it does on PostgreSQL. Other databases use a
    bounded pool with connect and idle timeouts.
    """
    if url.startswith("sqlite"):
        eng = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        event.listen(eng, "connect", _enable_sqlite_foreign_keys)
        return eng
    return create_engine(
        url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=0,
        pool_timeout=settings.DB_CONNECT_TIMEOUT_SECONDS,
        pool_recycle=settings.DB_IDLE_TIMEOUT_SECONDS,
        pool_pre_ping=True,
        connect_args={"connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS},
    )


engine = build_engine(settings.DATABASE_URL)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    This function is intended for local development and tests;
    production deployments should rely on a proper migration tool
    (alembic) instead.
    """
    from . import models  # noqa: F401  registers the tables on the metadata

    SQLModel.metadata.create_all(engine)


def dispose_engine():
    """Release pooled connections on shutdown."""
    engine.dispose()
    logger.info("database engine disposed")


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session, timeout_seconds: float = None):
    """Run the enclosed writes as one transaction.

    Commits when the block finishes and rolls back on any error. When a
    timeout is given, PostgreSQL enforces it per statement through
    `SET LOCAL statement_timeout`; on every backend the elapsed time is
    checked before committing and the transaction is rolled back with
    `TransactionTimeoutError` if the bound was exceeded.
    """
    started = time.monotonic()
    if timeout_seconds is None:
        timeout_message = "transaction cancelled by the database statement timeout"
    else:
        timeout_message = f"transaction exceeded {timeout_seconds:.0f}s"
    try:
        if timeout_seconds is not None and session.get_bind().dialect.name == "postgresql":
            millis = int(timeout_seconds * 1000)
            session.connection().exec_driver_sql(f"SET LOCAL statement_timeout = {millis}")
        yield session
        elapsed = time.monotonic() - started
        if timeout_seconds is not None and elapsed > timeout_seconds:
            raise TransactionTimeoutError(timeout_message)
        session.commit()
    except OperationalError as exc:
        session.rollback()
        if getattr(exc.orig, "sqlstate", None) == QUERY_CANCELED or getattr(exc.orig, "pgcode", None) == QUERY_CANCELED:
            raise TransactionTimeoutError(timeout_message) from exc
        raise
    except Exception:
        session.rollback()
        raise
