"""
Database handle shared by the gatherer, the scoring cycle and the service.

``Database.session()`` opens one short-lived connection per operation, so no
connection or lock outlives a single query batch, and worker threads never
share a ``sqlite3.Connection``. Each connection is configured from
``DatabaseConfig``:

  - foreign key enforcement ON (SQLite defaults it OFF);
  - ``busy_timeout_ms`` applied both to the driver and as a PRAGMA, so a
    reader waiting on a scoring cycle's write lock blocks instead of failing;
  - WAL journal mode when ``wal_mode`` is set, so readers keep serving the
    last published snapshot while a cycle writes the next one;
  - ``sqlite3.Row`` rows.

The session commits on clean exit and rolls back on any exception. Every
``sqlite3.Error``, including a failure to open the file, is re-raised as
``StorageUnavailableError`` naming the operation; it is never masked.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from validator_analytics.config import DatabaseConfig
from validator_analytics.db.migrations import run_migrations
from validator_analytics.db.schema import apply_schema
from validator_analytics.errors import StorageUnavailableError

logger = logging.getLogger(__name__)


def _connect(config: DatabaseConfig) -> sqlite3.Connection:
    Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(config.db_path, timeout=config.busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {int(config.busy_timeout_ms)};")
        if config.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.Error:
        conn.close()
        raise
    return conn


class Database:
    """Factory for short-lived, configured SQLite connections.

    Args:
        config: Database section of ``AppConfig``. ``":memory:"`` is not
            supported here because every session would see a fresh database.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        if config.db_path == ":memory:":
            raise ValueError(
                "Database requires a file path; tests needing :memory: open "
                "sqlite3 directly and call apply_schema()."
            )
        self.config = config

    @property
    def path(self) -> str:
        return self.config.db_path

    @contextmanager
    def session(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        """Yield a connection; commit on success, roll back and wrap driver errors.

        Args:
            operation: Short description used in logs and in the raised error.

        Raises:
            StorageUnavailableError: On any ``sqlite3.Error``, opening included.
        """
        started = time.monotonic()
        try:
            conn = _connect(self.config)
        except sqlite3.Error as exc:
            logger.error("Cannot open %s for %s: %s", self.config.db_path, operation, exc)
            raise StorageUnavailableError(operation, exc) from exc

        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("Storage failure during %s: %s", operation, exc)
            raise StorageUnavailableError(operation, exc) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
            logger.debug(
                "Session '%s' closed after %.1f ms",
                operation, (time.monotonic() - started) * 1000,
            )

    def initialize(self) -> int:
        """Apply the schema and pending migrations. Returns migrations applied."""
        with self.session("initialize schema") as conn:
            apply_schema(conn)
            return run_migrations(conn)
