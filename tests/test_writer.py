from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
import sqlite3

import pytest

from qmedia.db import SCHEMA_VERSION, Database
from qmedia.errors import PersistenceError
from qmedia.queries.media import get_media
from qmedia.writer import IndexWriter

REQUIRED_TABLES = {
    "media",
    "folders",
    "tags",
    "images_tags",
    "images_virtual",
    "scan_errors",
    "schema_version",
}


def _names(db: Database, sql: str, *args) -> set[str]:
    with db.read() as conn:
        return {str(r[0]) for r in conn.execute(sql, args).fetchall()}


def test_schema_tables_exist(db: Database) -> None:
    names = _names(db, "SELECT name FROM sqlite_master WHERE type IN ('table','view')")
    assert REQUIRED_TABLES.issubset(names)
    assert db.schema_version() == SCHEMA_VERSION


def test_initialize_renames_legacy_path_column(tmp_path: Path) -> None:
    path = tmp_path / "legacy.sqlite3"
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE media (hash INTEGER PRIMARY KEY, name TEXT, date TEXT, modified TEXT, folder TEXT)"
    )
    conn.execute("INSERT INTO media VALUES (1, 'a.jpg', '2020-01-01T00:00:00.000Z', '', '.')")
    conn.commit()
    conn.close()

    db = Database(path)
    db.initialize()
    db.initialize()
    with db.read() as conn:
        row = conn.execute("SELECT path FROM media WHERE hash = 1").fetchone()
    assert row["path"] == "a.jpg"


def test_upsert_and_reupsert_replaces_tags(writer: IndexWriter, db: Database, make_record) -> None:
    writer.upsert(make_record("trip/a.jpg", tags=["Family", "Beach"], camera="X100V"))
    assert _names(db, "SELECT key FROM tags") == {"family", "beach"}
    assert _names(db, "SELECT key FROM folders") == {"trip"}

    writer.upsert(make_record("trip/a.jpg", tags=["Family"], camera="X-T5"))
    assert _names(db, "SELECT key FROM tags") == {"family"}
    with db.read() as conn:
        record = get_media(conn, make_record("trip/a.jpg").hash)
        fts = conn.execute("SELECT COUNT(*) AS n FROM images_virtual").fetchone()["n"]
    assert record.camera == "X-T5"
    assert [t.value for t in record.tags] == ["Family"]
    assert fts == 1


def test_delete_garbage_collects_tags_and_folders(writer: IndexWriter, db: Database, make_record) -> None:
    a = make_record("trip/a.jpg", tags=["Family", "Beach"])
    b = make_record("trip/b.jpg", tags=["Family"])
    writer.upsert(a)
    writer.upsert(b)

    writer.delete(a.path, a)
    assert _names(db, "SELECT key FROM tags") == {"family"}
    assert _names(db, "SELECT key FROM folders") == {"trip"}

    writer.delete(b.path, b)
    assert _names(db, "SELECT key FROM tags") == set()
    assert _names(db, "SELECT key FROM folders") == set()
    assert _names(db, "SELECT image_id FROM images_tags") == set()


def test_delete_rejects_mismatched_path(writer: IndexWriter, make_record) -> None:
    record = make_record("a.jpg")
    writer.upsert(record)
    with pytest.raises(PersistenceError):
        writer.delete("b.jpg", record)


def test_upsert_rejects_hash_owned_by_other_path(writer: IndexWriter, db: Database, make_record) -> None:
    original = make_record("a.jpg")
    writer.upsert(original)
    collision = replace(make_record("b.jpg"), hash=original.hash)
    with pytest.raises(PersistenceError):
        writer.upsert(collision)
    assert _names(db, "SELECT path FROM media") == {"a.jpg"}
    assert _names(db, "SELECT path FROM images_virtual") == {"a.jpg"}


def test_undated_record_is_never_persisted(writer: IndexWriter, db: Database, make_record) -> None:
    with pytest.raises(PersistenceError):
        writer.upsert(make_record("nodate.jpg", date=None))
    assert _names(db, "SELECT path FROM media") == set()


def test_mutations_flush_response_cache(writer: IndexWriter, make_record) -> None:
    writer.cache.put(writer.cache.key("/api/timeline"), b"[]")
    assert len(writer.cache) == 1
    writer.upsert(make_record("a.jpg"))
    assert len(writer.cache) == 0


def test_scan_errors_roundtrip_and_clear_on_upsert(writer: IndexWriter, make_record) -> None:
    when = datetime(2024, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
    writer.record_scan_error("bad.jpg", "unable to decode", when)
    writer.record_scan_error("bad.jpg", "still broken", when)
    assert writer.scan_errors() == {"bad.jpg": when}

    writer.upsert(make_record("bad.jpg"))
    assert writer.scan_errors() == {}


def test_locked_database_is_retried(db: Database, cache, make_record, monkeypatch) -> None:
    writer = IndexWriter(db, cache, retries=3)
    monkeypatch.setattr("qmedia.writer.RETRY_DELAY", 0)
    calls = {"n": 0}
    original = db.transaction

    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise sqlite3.OperationalError("database is locked")
        return original()

    monkeypatch.setattr(db, "transaction", flaky)
    writer.upsert(make_record("a.jpg"))
    assert calls["n"] == 3

    calls["n"] = -10
    with pytest.raises(PersistenceError):
        writer.upsert(make_record("b.jpg"))
