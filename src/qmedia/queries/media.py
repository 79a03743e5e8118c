from __future__ import annotations

from collections import defaultdict
from datetime import date
import sqlite3

from qmedia.assets.sizes import srcset
from qmedia.errors import NotFoundError
from qmedia.models import MediaRecord, column_list
from qmedia.output_models import MediaOutput, MemoryYear, NeighborOutput, TagOutput
from qmedia.util.time import SENTINEL_DATE, format_utc

MEMORY_YEARS = 20
MEMORY_PREVIEWS = 3


def direction(value: str) -> str:
    upper = (value or "").upper()
    return upper if upper in ("ASC", "DESC") else "DESC"


def to_output(record: MediaRecord, include_originals: bool = False) -> MediaOutput:
    return MediaOutput(
        hash=record.hash,
        path=record.path,
        media_type=record.media_type,
        folder=record.folder,
        date=record.date_text,
        modified=format_utc(record.modified),
        width=record.width,
        height=record.height,
        ratio=record.ratio,
        padding=record.padding,
        rating=record.rating,
        shutter_speed=record.shutter_speed,
        aperture=record.aperture,
        iso=record.iso,
        lens=record.lens,
        camera=record.camera,
        focal_length=record.focal_length,
        focal_length_35=record.focal_length_35,
        focus_distance=record.focus_distance,
        altitude=record.altitude,
        latitude=record.latitude,
        longitude=record.longitude,
        color=record.color,
        location=record.location,
        description=record.description,
        title=record.title,
        software=record.software,
        offset=record.offset,
        rotation=record.rotation,
        tags=[TagOutput(key=t.key, value=t.value) for t in record.tags],
        srcset=srcset(record.hash, record.width, record.path, include_originals),
    )


def neighbor_from_row(row: sqlite3.Row, include_originals: bool = False) -> NeighborOutput:
    width = int(row["width"] or 0)
    return NeighborOutput(
        hash=int(row["hash"]),
        path=str(row["path"]),
        media_type=str(row["mediatype"]),
        date=str(row["date"]),
        width=width,
        height=int(row["height"] or 0),
        color=str(row["color"] or ""),
        srcset=srcset(int(row["hash"]), width, str(row["path"]), include_originals),
    )


def get_media(conn: sqlite3.Connection, media_hash: int) -> MediaRecord:
    row = conn.execute(f"SELECT {column_list()} FROM media WHERE hash = ?", (media_hash,)).fetchone()
    if row is None:
        raise NotFoundError(f"media {media_hash} not found")
    return MediaRecord.from_row(row)


def list_media(conn: sqlite3.Connection, offset: int = 0, order: str = "ASC", limit: int = -1) -> list[MediaRecord]:
    rows = conn.execute(
        f"""
        SELECT {column_list()} FROM media
        WHERE date != ?
        ORDER BY date {direction(order)}
        LIMIT ? OFFSET ?
        """,
        (SENTINEL_DATE, limit, offset),
    ).fetchall()
    return [MediaRecord.from_row(r) for r in rows]


def count_media(conn: sqlite3.Connection, rating: float = 0.0, date_from: str = "", date_to: str = "") -> int:
    clauses = ["date != ?", "rating >= ?"]
    args: list[object] = [SENTINEL_DATE, rating]
    if date_from:
        clauses.append("date >= ?")
        args.append(date_from)
    if date_to:
        clauses.append("date <= ?")
        args.append(date_to)
    row = conn.execute(f"SELECT COUNT(*) AS n FROM media WHERE {' AND '.join(clauses)}", args).fetchone()
    return int(row["n"])


def tags(conn: sqlite3.Connection, order: str = "ASC") -> list[TagOutput]:
    rows = conn.execute(f"SELECT key, value FROM tags ORDER BY key {direction(order)}").fetchall()
    return [TagOutput(key=str(r["key"]), value=str(r["value"])) for r in rows]


def tag_items(
    conn: sqlite3.Connection,
    key: str,
    offset: int = 0,
    order: str = "DESC",
    page_size: int = 100,
    include_originals: bool = False,
) -> list[NeighborOutput]:
    rows = conn.execute(
        f"""
        SELECT m.hash, m.path, m.mediatype, m.date, m.width, m.height, m.color
        FROM media m
        INNER JOIN images_tags it ON m.hash = it.image_id
        INNER JOIN tags t ON it.tag_id = t.id
        WHERE t.key = ? AND m.date != ?
        ORDER BY m.date {direction(order)}
        LIMIT ? OFFSET ?
        """,
        (key, SENTINEL_DATE, page_size, offset),
    ).fetchall()
    return [neighbor_from_row(r, include_originals) for r in rows]


def tag_total(conn: sqlite3.Connection, key: str) -> int:
    row = conn.execute(
        """
        SELECT COUNT(*) AS n FROM images_tags it
        INNER JOIN tags t ON it.tag_id = t.id
        WHERE t.key = ?
        """,
        (key,),
    ).fetchone()
    return int(row["n"])


def tag_title(conn: sqlite3.Connection, key: str) -> str:
    row = conn.execute("SELECT value FROM tags WHERE key = ?", (key,)).fetchone()
    if row is None:
        raise NotFoundError(f"tag {key} not found")
    return str(row["value"])


def folder_items(
    conn: sqlite3.Connection,
    key: str,
    offset: int = 0,
    order: str = "DESC",
    page_size: int = 100,
    include_originals: bool = False,
) -> list[NeighborOutput]:
    rows = conn.execute(
        f"""
        SELECT hash, path, mediatype, date, width, height, color
        FROM media
        WHERE folder = ? AND date != ?
        ORDER BY date {direction(order)}
        LIMIT ? OFFSET ?
        """,
        (key, SENTINEL_DATE, page_size, offset),
    ).fetchall()
    return [neighbor_from_row(r, include_originals) for r in rows]


def folder_total(conn: sqlite3.Connection, key: str) -> int:
    row = conn.execute("SELECT COUNT(*) AS n FROM media WHERE folder = ?", (key,)).fetchone()
    return int(row["n"])


def folder_count(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS n FROM folders").fetchone()
    return int(row["n"])


def map_items(conn: sqlite3.Connection) -> list[list[float | int]]:
    rows = conn.execute(
        """
        SELECT latitude, longitude, MIN(hash) AS hash
        FROM media
        WHERE latitude != 0 AND longitude != 0 AND date != ?
        GROUP BY date
        ORDER BY date DESC
        """,
        (SENTINEL_DATE,),
    ).fetchall()
    return [[float(r["latitude"]), float(r["longitude"]), int(r["hash"])] for r in rows]


def _years_back(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # Feb 29 on a non-leap year.
        return date(today.year - years, 3, 1)


def memories(conn: sqlite3.Connection, today: date, include_originals: bool = False) -> list[MemoryYear]:
    """Items captured on today's calendar day in each of the previous years, newest year first."""
    days = [_years_back(today, i).isoformat() for i in range(1, MEMORY_YEARS + 1)]
    marks = ", ".join("?" for _ in days)
    rows = conn.execute(
        f"""
        SELECT hash, path, mediatype, date, width, height, color
        FROM media
        WHERE substr(date, 1, 10) IN ({marks})
        ORDER BY date DESC
        """,
        days,
    ).fetchall()

    grouped: dict[int, list[sqlite3.Row]] = defaultdict(list)
    for row in rows:
        grouped[int(str(row["date"])[:4])].append(row)

    out: list[MemoryYear] = []
    for year, items in grouped.items():
        out.append(
            MemoryYear(
                years_ago=max(1, today.year - year),
                date=str(items[0]["date"])[:10],
                total=len(items),
                media=[neighbor_from_row(r, include_originals) for r in items[:MEMORY_PREVIEWS]],
            )
        )
    out.sort(key=lambda m: m.date, reverse=True)
    return out
