from __future__ import annotations

import sqlite3
from typing import Iterable, Mapping

from qmedia.models import MediaRecord
from qmedia.output_models import NeighborOutput
from qmedia.queries.filters import FilterParams, build_predicate
from qmedia.queries.media import neighbor_from_row

PREVIOUS_LIMIT = 3

_COLUMNS = "MIN(m.hash) AS hash, m.path, m.mediatype, m.date, m.width, m.height, m.color"


def next_items(
    conn: sqlite3.Connection,
    current: MediaRecord,
    params: FilterParams,
    limit: int = 3,
    exclude: Iterable[int] = (),
    aliases: Mapping[str, str] | None = None,
    include_originals: bool = False,
) -> list[NeighborOutput]:
    """Items that follow current in the newest-first timeline, one per timestamp."""
    pred = build_predicate(params, aliases)
    pred.where("m.hash != ?", current.hash)
    excluded = [int(h) for h in exclude]
    if excluded:
        pred.where(f"m.hash NOT IN ({', '.join('?' for _ in excluded)})", *excluded)
    pred.where("m.date < ?", current.date_text)
    rows = conn.execute(
        f"SELECT {_COLUMNS} {pred.sql()} GROUP BY m.date ORDER BY m.date DESC LIMIT ?",
        [*pred.args, limit],
    ).fetchall()
    return [neighbor_from_row(r, include_originals) for r in rows]


def previous_items(
    conn: sqlite3.Connection,
    current: MediaRecord,
    params: FilterParams,
    aliases: Mapping[str, str] | None = None,
    include_originals: bool = False,
) -> list[NeighborOutput]:
    """Up to three items that precede current in the newest-first timeline, newest first."""
    pred = build_predicate(params, aliases)
    pred.where("m.hash != ?", current.hash)
    pred.where("m.date > ?", current.date_text)
    rows = conn.execute(
        f"SELECT {_COLUMNS} {pred.sql()} GROUP BY m.date ORDER BY m.date ASC LIMIT ?",
        [*pred.args, PREVIOUS_LIMIT],
    ).fetchall()
    items = [neighbor_from_row(r, include_originals) for r in rows]
    items.sort(key=lambda n: n.date, reverse=True)
    return items
