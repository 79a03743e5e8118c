from __future__ import annotations

from datetime import datetime
import logging
import sqlite3
import time

from qmedia.assets.pipeline import AssetPipeline
from qmedia.cache import ResponseCache
from qmedia.db import Database, is_locked
from qmedia.errors import PersistenceError
from qmedia.ids import folder_id
from qmedia.models import MediaRecord, Tag, column_list
from qmedia.util.time import format_utc, is_sentinel, parse_utc

logger = logging.getLogger(__name__)

RETRY_DELAY = 0.05


def _gc_tags(conn: sqlite3.Connection, tags: list[Tag]) -> None:
    for tag in tags:
        conn.execute(
            "DELETE FROM tags WHERE id = ? AND NOT EXISTS (SELECT 1 FROM images_tags WHERE tag_id = ?)",
            (tag.id, tag.id),
        )


def _gc_folder(conn: sqlite3.Connection, key: str) -> None:
    conn.execute(
        "DELETE FROM folders WHERE key = ? AND NOT EXISTS (SELECT 1 FROM media WHERE folder = ?)",
        (key, key),
    )


def _delete_rows(conn: sqlite3.Connection, media_hash: int) -> None:
    conn.execute("DELETE FROM images_tags WHERE image_id = ?", (media_hash,))
    conn.execute("DELETE FROM images_virtual WHERE hash = ?", (media_hash,))
    conn.execute("DELETE FROM media WHERE hash = ?", (media_hash,))


def _existing(conn: sqlite3.Connection, media_hash: int) -> MediaRecord | None:
    row = conn.execute(f"SELECT {column_list()} FROM media WHERE hash = ?", (media_hash,)).fetchone()
    return MediaRecord.from_row(row) if row else None


class IndexWriter:
    """Single writer for the media, folder and tag tables."""

    def __init__(
        self,
        db: Database,
        cache: ResponseCache,
        assets: AssetPipeline | None = None,
        retries: int = 3,
    ):
        self.db = db
        self.cache = cache
        self.assets = assets
        self.retries = max(1, retries)

    def _run(self, action: str, fn) -> None:
        for attempt in range(1, self.retries + 1):
            try:
                with self.db.transaction() as conn:
                    fn(conn)
                return
            except sqlite3.OperationalError as exc:
                if is_locked(exc) and attempt < self.retries:
                    logger.warning("%s: database locked, retrying (%d/%d)", action, attempt, self.retries)
                    time.sleep(RETRY_DELAY * attempt)
                    continue
                raise PersistenceError(f"{action} failed: {exc}") from exc
            except sqlite3.Error as exc:
                raise PersistenceError(f"{action} failed: {exc}") from exc

    def upsert(self, record: MediaRecord) -> None:
        """Insert or replace one record together with its folder, tags and edges."""
        if is_sentinel(record.date):
            raise PersistenceError(f"skipping insert, {record.path} has no date")

        def write(conn: sqlite3.Connection) -> None:
            previous = _existing(conn, record.hash)
            if previous is not None:
                if previous.path != record.path:
                    raise PersistenceError(
                        f"hash {record.hash} of {record.path} already belongs to {previous.path}"
                    )
                _delete_rows(conn, record.hash)

            cur = conn.execute(
                "INSERT OR IGNORE INTO folders(id, key) VALUES (?, ?)",
                (folder_id(record.folder), record.folder),
            )
            if cur.rowcount:
                logger.debug("added folder %s", record.folder)
            for tag in record.tags:
                conn.execute(
                    "INSERT OR IGNORE INTO tags(id, key, value) VALUES (?, ?, ?)",
                    (tag.id, tag.key, tag.value),
                )
                conn.execute(
                    "INSERT OR IGNORE INTO images_tags(image_id, tag_id) VALUES (?, ?)",
                    (record.hash, tag.id),
                )
            placeholders = ", ".join("?" for _ in record.to_row())
            conn.execute(f"INSERT INTO media({column_list()}) VALUES ({placeholders})", record.to_row())
            text = record.search_text()
            conn.execute(
                """
                INSERT INTO images_virtual(hash, path, subject, location, description, title, camera, lens, folder)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.hash,
                    text["path"],
                    text["subject"],
                    text["location"],
                    text["description"],
                    text["title"],
                    text["camera"],
                    text["lens"],
                    text["folder"],
                ),
            )
            conn.execute("DELETE FROM scan_errors WHERE path = ?", (record.path,))

            if previous is not None:
                _gc_tags(conn, previous.tags)
                if previous.folder != record.folder:
                    _gc_folder(conn, previous.folder)

        self._run(f"upsert {record.path}", write)
        self.cache.flush()

    def delete(self, path: str, record: MediaRecord, remove_thumbnails: bool = False) -> None:
        if record.path != path:
            raise PersistenceError(f"media path in index ({record.path}) does not match {path}")

        def write(conn: sqlite3.Connection) -> None:
            _delete_rows(conn, record.hash)
            _gc_tags(conn, record.tags)
            _gc_folder(conn, record.folder)

        self._run(f"delete {path}", write)
        if remove_thumbnails and self.assets is not None:
            removed = self.assets.remove_thumbnails(record)
            self.assets.remove_video(record.hash)
            logger.debug("removed %d thumbnails for %s", removed, path)
        self.cache.flush()

    def record_scan_error(self, path: str, error: str, when: datetime) -> None:
        def write(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO scan_errors(path, modified, error) VALUES (?, ?, ?)",
                (path, format_utc(when), error),
            )

        self._run(f"record scan error {path}", write)

    def scan_errors(self) -> dict[str, datetime]:
        with self.db.read() as conn:
            rows = conn.execute("SELECT path, modified FROM scan_errors").fetchall()
        return {str(r["path"]): parse_utc(str(r["modified"])) for r in rows}
