from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from qmedia.cache import ResponseCache
from qmedia.db import Database
from qmedia.ids import media_id
from qmedia.media.files import folder_key
from qmedia.models import IMAGE, MediaRecord, Tag
from qmedia.util.time import parse_utc
from qmedia.writer import IndexWriter


def _record(path: str, date: str | None = "2021-05-01T10:00:00.000Z", **kw) -> MediaRecord:
    width = kw.pop("width", 1000)
    height = kw.pop("height", 500)
    tags = [Tag.from_value(v) for v in kw.pop("tags", [])]
    return MediaRecord(
        hash=media_id(path),
        path=path,
        media_type=kw.pop("media_type", IMAGE),
        folder=folder_key(path),
        modified=kw.pop("modified", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        date=parse_utc(date) if date else None,
        width=width,
        height=height,
        ratio=height / width if width else 0.0,
        padding=height / width * 100 if width else 0.0,
        tags=tags,
        **kw,
    )


@pytest.fixture
def make_record() -> Callable[..., MediaRecord]:
    return _record


@pytest.fixture
def db(tmp_path: Path) -> Database:
    database = Database(tmp_path / "qmedia.sqlite3")
    database.initialize()
    return database


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(max_entries=64)


@pytest.fixture
def writer(db: Database, cache: ResponseCache) -> IndexWriter:
    return IndexWriter(db, cache)
