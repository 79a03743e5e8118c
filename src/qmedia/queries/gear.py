from __future__ import annotations

import sqlite3
from typing import Mapping

from qmedia.output_models import GearItem, GearOutput
from qmedia.util.time import SENTINEL_DATE

GEAR_COLUMNS = ("camera", "lens", "focallength35", "software")


def _name(column: str, value: object) -> str:
    if value is None:
        return ""
    if column == "focallength35":
        number = float(value)
        return str(number).removesuffix(".0") if number else ""
    return str(value).strip()


def gear_counts(conn: sqlite3.Connection, column: str) -> list[GearItem]:
    if column not in GEAR_COLUMNS:
        raise ValueError(f"unknown gear column: {column}")
    rows = conn.execute(
        f"""
        SELECT {column} AS name, COUNT({column}) AS total
        FROM media
        WHERE date != ?
        GROUP BY {column}
        ORDER BY total DESC, name ASC
        """,
        (SENTINEL_DATE,),
    ).fetchall()
    out: list[GearItem] = []
    for row in rows:
        name = _name(column, row["name"])
        total = int(row["total"] or 0)
        if not name or total == 0:
            continue
        out.append(GearItem(name=name, total=total))
    return out


def merge_aliases(items: list[GearItem], aliases: Mapping[str, str]) -> list[GearItem]:
    """Fold alias-equivalent names into their group name, then order by total desc and name asc."""
    merged: dict[str, int] = {}
    for item in items:
        name = aliases.get(item.name.strip(), item.name)
        merged[name] = merged.get(name, 0) + item.total
    out = [GearItem(name=name, total=total) for name, total in merged.items()]
    out.sort(key=lambda g: (-g.total, g.name))
    return out


def gear(conn: sqlite3.Connection, aliases: Mapping[str, str] | None = None) -> GearOutput:
    return GearOutput(
        camera=gear_counts(conn, "camera"),
        lens=merge_aliases(gear_counts(conn, "lens"), aliases or {}),
        focal_length_35=gear_counts(conn, "focallength35"),
        software=gear_counts(conn, "software"),
    )
