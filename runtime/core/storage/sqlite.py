"""SQLite storage driver.

This module provides the shared database handle behind the DB-agnostic
storage interface. One connection is opened at startup and reused by every
tick; access is serialized so worker threads can share it sequentially.

Tables:
- schema_version: single row, guards against unknown layouts
- rabbit: append-only, one row per tick
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from config.settings import StorageConfig
from errors import ResourceConnectionError
from storage.interfaces import SharedResource, TickRecord

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

INSERT_TICK_SQL = "INSERT INTO rabbit (created_date) VALUES (?);"


class SQLiteDatabase(SharedResource):
    def __init__(self, path: Path | str):
        self.path = path if str(path) == MEMORY_PATH else Path(path).resolve()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "SQLiteDatabase":
        if self._conn is not None:
            return self
        try:
            if isinstance(self.path, Path):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=30, isolation_level=None, check_same_thread=False)
        except (OSError, sqlite3.Error) as e:
            raise ResourceConnectionError(f"Cannot open SQLite database {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._conn = conn
        try:
            self._migrate()
        except Exception:
            self.close()
            raise
        logger.info("database_opened", extra={"event": "database_opened"})
        return self

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is None:
            return
        conn.close()
        logger.info("database_closed", extra={"event": "database_closed"})

    @contextmanager
    def statement(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            if self._conn is None:
                raise ResourceConnectionError(f"SQLite database is not open: {self.path}")
            cur = self._conn.cursor()
            try:
                yield cur
            finally:
                cur.close()

    def fetch_ticks(self) -> list[TickRecord]:
        with self.statement() as cur:
            rows = cur.execute("SELECT id, created_date FROM rabbit ORDER BY id ASC;").fetchall()
            return [TickRecord(id=int(r["id"]), created_date=str(r["created_date"])) for r in rows]

    def _migrate(self) -> None:
        try:
            with self.statement() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS schema_version (
                      version INTEGER NOT NULL
                    );
                    """
                )
                row = cur.execute("SELECT version FROM schema_version LIMIT 1;").fetchone()
                if row is None:
                    cur.execute("INSERT INTO schema_version(version) VALUES (1);")
                    version = 1
                else:
                    version = int(row["version"])

                if version != 1:
                    raise ResourceConnectionError(f"Unsupported SQLite schema_version: {version}")

                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS rabbit (
                      id INTEGER PRIMARY KEY AUTOINCREMENT,
                      created_date TEXT NOT NULL
                    );
                    """
                )
        except sqlite3.Error as e:
            raise ResourceConnectionError(f"Cannot prepare SQLite schema in {self.path}: {e}") from e


def open_database(config: StorageConfig) -> SQLiteDatabase:
    """Build the (not yet opened) shared resource for a storage config."""
    if config.driver != "sqlite":
        raise ResourceConnectionError(f"Unsupported storage driver: {config.driver}")
    if config.username or config.password:
        logger.debug("sqlite_credentials_ignored", extra={"event": "sqlite_credentials_ignored"})
    return SQLiteDatabase(config.sqlite_path)
