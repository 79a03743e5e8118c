from __future__ import annotations

import sqlite3
from typing import Mapping

from qmedia.models import VIDEO
from qmedia.output_models import DayCount, TimelineItem, TimelineOutput
from qmedia.queries.filters import FilterParams, build_predicate


def timeline(conn: sqlite3.Connection, params: FilterParams, aliases: Mapping[str, str] | None = None) -> TimelineOutput:
    """One page of the timeline, one item per distinct capture timestamp."""
    params = params.normalized()
    pred = build_predicate(params, aliases)
    base = pred.sql()

    total_row = conn.execute(f"SELECT COUNT(DISTINCT m.date) AS total {base}", pred.args).fetchone()
    total = int(total_row["total"] or 0)

    days: list[DayCount] = []
    if params.cursor == 0:
        rows = conn.execute(
            f"""
            SELECT substr(m.date, 1, 10) AS day, COUNT(DISTINCT m.date) AS total
            {base}
            GROUP BY day
            ORDER BY day DESC
            """,
            pred.args,
        ).fetchall()
        days = [DayCount(day=str(r["day"]), total=int(r["total"])) for r in rows]

    rows = conn.execute(
        f"""
        SELECT MIN(m.hash) AS hash, m.width, m.height, m.color, m.date, m.modified, m.mediatype
        {base}
        GROUP BY m.date
        ORDER BY m.{params.order_by} {params.direction}
        LIMIT ? OFFSET ?
        """,
        [*pred.args, params.page_size, params.cursor],
    ).fetchall()
    items = [
        TimelineItem(
            id=int(r["hash"]),
            w=int(r["width"] or 0),
            h=int(r["height"] or 0),
            c=str(r["color"] or ""),
            t=VIDEO if r["mediatype"] == VIDEO else "",
            d=str(r["date"])[:10],
        )
        for r in rows
    ]

    next_cursor = ""
    following = params.cursor + params.page_size
    if len(items) >= params.page_size and following < total:
        next_cursor = str(following)
    return TimelineOutput(total=total, items=items, days=days, next_cursor=next_cursor)
