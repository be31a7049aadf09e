"""
Tests for SQLite engine setup.
"""

import db_engine


def test_busy_timeout_on_every_pooled_connection(database):
    engine = db_engine.get_engine()

    with engine.connect() as first, engine.connect() as second:
        for conn in (first, second):
            timeout = conn.exec_driver_sql("PRAGMA busy_timeout").scalar()
            assert timeout == db_engine.SQLITE_BUSY_TIMEOUT_MS


def test_wal_mode_is_enabled(database):
    with db_engine.get_engine().connect() as conn:
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar().lower() == "wal"
