"""
Tests for validator_analytics/db/database.py.

What we test
------------
Database.session():
  - Connections come configured: foreign keys on, WAL journal, Row factory.
  - Clean exit commits; the row is visible to the next session.
  - A sqlite3.Error inside the block rolls back and surfaces as
    StorageUnavailableError naming the operation, with the driver error chained.
  - Other exceptions roll back and propagate unchanged.
  - A connection that cannot be opened also raises StorageUnavailableError.

Database():
  - ":memory:" is rejected.
"""

from __future__ import annotations

import sqlite3

import pytest

from validator_analytics.config import DatabaseConfig
from validator_analytics.db import database as database_module
from validator_analytics.db.database import Database
from validator_analytics.errors import StorageUnavailableError


def _count(db: Database) -> int:
    with db.session("count validators") as conn:
        return conn.execute("SELECT COUNT(*) FROM validators").fetchone()[0]


def _insert(conn: sqlite3.Connection, vote_account: str) -> None:
    conn.execute(
        "INSERT INTO validators (vote_account, commission_rate) VALUES (?, ?)",
        (vote_account, 5.0),
    )


class TestSession:
    def test_configured_connection(self, file_db):
        with file_db.session("inspect pragmas") as conn:
            assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
            assert isinstance(conn.execute("SELECT 1 AS one").fetchone(), sqlite3.Row)

    def test_commit_on_clean_exit(self, file_db):
        with file_db.session("insert validator") as conn:
            _insert(conn, "vote-a")
        assert _count(file_db) == 1

    def test_driver_error_wrapped_and_rolled_back(self, file_db):
        with pytest.raises(StorageUnavailableError) as exc_info:
            with file_db.session("insert twice") as conn:
                _insert(conn, "vote-a")
                _insert(conn, "vote-a")
        assert exc_info.value.operation == "insert twice"
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)
        assert _count(file_db) == 0

    def test_other_errors_propagate_unchanged(self, file_db):
        with pytest.raises(KeyError):
            with file_db.session("insert then fail") as conn:
                _insert(conn, "vote-a")
                raise KeyError("boom")
        assert _count(file_db) == 0

    def test_open_failure_wrapped(self, file_db, monkeypatch):
        def refuse(*args, **kwargs):
            raise sqlite3.OperationalError("unable to open database file")

        monkeypatch.setattr(database_module.sqlite3, "connect", refuse)
        with pytest.raises(StorageUnavailableError) as exc_info:
            with file_db.session("load snapshot"):
                pass
        assert exc_info.value.operation == "load snapshot"


class TestDatabase:
    def test_memory_rejected(self):
        with pytest.raises(ValueError, match="file path"):
            Database(DatabaseConfig(db_path=":memory:"))

    def test_parent_directory_created(self, tmp_path):
        db = Database(DatabaseConfig(db_path=str(tmp_path / "nested" / "va.db")))
        db.initialize()
        assert (tmp_path / "nested" / "va.db").exists()
