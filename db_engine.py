"""
Database engine and session management for Ledgerfolio.
This module is separate from the models to avoid circular imports.
Uses SQLModel with SQLite for persistent storage.
Features Write-Ahead Logging (WAL) mode for improved concurrency.
"""

from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[Engine] = None

# Milliseconds a connection waits on a locked database before failing
SQLITE_BUSY_TIMEOUT_MS = 5000


def get_engine() -> Engine:
    """Get or create the database engine with WAL mode enabled."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.is_sqlite:
            connect_args["check_same_thread"] = False  # Allow use across threads
        _engine = create_engine(
            settings.database_url,
            echo=settings.db_echo,
            connect_args=connect_args
        )
        if settings.is_sqlite:
            event.listen(_engine, "connect", _set_busy_timeout)
        if settings.is_sqlite and ":memory:" not in settings.database_url:
            _enable_wal_mode()
    return _engine


def _enable_wal_mode():
    """Enable SQLite WAL mode for improved concurrent read/write performance."""
    if _engine is None:
        return

    try:
        with _engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            logger.info("SQLite WAL mode enabled for concurrent access")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def _set_busy_timeout(dbapi_connection, connection_record):
    """Apply the busy timeout to every new pooled connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def reset_engine():
    """Dispose the cached engine so the next call picks up fresh settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db():
    """Initialize the database and create all tables."""
    from models import Transaction, Portfolio, Holding, RealizedGain  # noqa: F401

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")


def get_session() -> Session:
    """Get a new database session."""
    return Session(get_engine(), expire_on_commit=False)


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """
    Open one atomic unit spanning ledger, portfolio and realized-gain writes.

    The yielded session is the unit handle: repositories called with it only
    flush, and everything is committed together when the block exits. Any
    exception rolls the whole unit back.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
