from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Iterator

from qmedia.errors import PersistenceError
from qmedia.util.time import now_iso

logger = logging.getLogger(__name__)

SETUP_SQL = Path(__file__).resolve().parent / "migrations" / "setup.sql"
SCHEMA_VERSION = 3
READ_POOL_SIZE = 5


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type IN ('table','view') AND name = ?",
        (name,),
    ).fetchone()
    return row is not None


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    if not _table_exists(conn, table):
        return False
    cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(c["name"] == column for c in cols)


def _schema_version(conn: sqlite3.Connection) -> int:
    if not _table_exists(conn, "schema_version"):
        return 0
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row["version"]) if row else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        """
        INSERT INTO schema_version(id, version, updated_at)
        VALUES(1, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
          version=excluded.version,
          updated_at=excluded.updated_at
        """,
        (version, now_iso()),
    )


def _rename_legacy_path_column(conn: sqlite3.Connection) -> bool:
    if not _column_exists(conn, "media", "name") or _column_exists(conn, "media", "path"):
        return False
    conn.execute("ALTER TABLE media RENAME COLUMN name TO path")
    logger.info("renamed media.name to media.path")
    return True


def is_locked(exc: sqlite3.Error) -> bool:
    text = str(exc).lower()
    return "locked" in text or "busy" in text


class Database:
    def __init__(self, path: Path, busy_timeout_ms: int = 5000, read_pool_size: int = READ_POOL_SIZE):
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._readers = threading.BoundedSemaphore(read_pool_size)

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self.path,
                timeout=self.busy_timeout_ms / 1000,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"unable to open {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = self._open()
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write handle holding one IMMEDIATE transaction; rolled back on any error."""
        conn = self._open()
        conn.isolation_level = None
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        with self._readers:
            conn = self._open()
            conn.execute("PRAGMA query_only = ON")
            try:
                yield conn
            finally:
                conn.close()

    def initialize(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        sql = SETUP_SQL.read_text()
        with self.connect() as conn:
            _rename_legacy_path_column(conn)
            conn.executescript(sql)
            if _schema_version(conn) < SCHEMA_VERSION:
                _set_schema_version(conn, SCHEMA_VERSION)

    def schema_version(self) -> int:
        with self.read() as conn:
            return _schema_version(conn)
