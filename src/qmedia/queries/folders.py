from __future__ import annotations

from dataclasses import dataclass, field
import posixpath
import sqlite3

from qmedia.output_models import FolderNode, NeighborOutput
from qmedia.queries.media import direction, neighbor_from_row

PREVIEWS = 5


@dataclass(slots=True)
class FolderSummary:
    id: int
    key: str
    image_count: int
    media: list[NeighborOutput] = field(default_factory=list)


def folder_summaries(
    conn: sqlite3.Connection,
    order: str = "ASC",
    page_size: int = -1,
    offset: int = 0,
    include_originals: bool = False,
) -> list[FolderSummary]:
    rows = conn.execute(
        f"""
        SELECT f.id, f.key, COUNT(m.hash) AS image_count
        FROM folders f
        LEFT JOIN media m ON m.folder = f.key
        GROUP BY f.id, f.key
        ORDER BY f.key {direction(order)}
        LIMIT ? OFFSET ?
        """,
        (page_size, offset),
    ).fetchall()
    summaries = {
        str(r["key"]): FolderSummary(id=int(r["id"]), key=str(r["key"]), image_count=int(r["image_count"]))
        for r in rows
    }
    if not summaries:
        return []

    keys = list(summaries)
    marks = ", ".join("?" for _ in keys)
    previews = conn.execute(
        f"""
        WITH ranked AS (
          SELECT hash, path, mediatype, date, width, height, color, folder,
                 ROW_NUMBER() OVER (PARTITION BY folder ORDER BY date DESC) AS row_num
          FROM media
          WHERE folder IN ({marks})
        )
        SELECT * FROM ranked WHERE row_num <= ? ORDER BY folder, row_num
        """,
        [*keys, PREVIEWS],
    ).fetchall()
    for row in previews:
        summaries[str(row["folder"])].media.append(neighbor_from_row(row, include_originals))
    return list(summaries.values())


def build_tree(summaries: list[FolderSummary]) -> list[FolderNode]:
    """Nest folder keys into a hierarchy, creating nodes for intermediate directories."""
    nodes: dict[str, FolderNode] = {}
    for summary in summaries:
        current = ""
        for part in summary.key.split("/"):
            current = f"{current}/{part}" if current else part
            if current not in nodes:
                nodes[current] = FolderNode(key=current, name=part)
            if current == summary.key:
                node = nodes[current]
                node.id = summary.id
                node.image_count = summary.image_count
                node.media = summary.media

    roots: list[FolderNode] = []
    for key, node in nodes.items():
        parent = posixpath.dirname(key)
        if parent and parent in nodes:
            nodes[parent].children.append(node)
        else:
            roots.append(node)

    def sort_nodes(items: list[FolderNode]) -> None:
        items.sort(key=lambda n: n.key)
        for item in items:
            sort_nodes(item.children)

    sort_nodes(roots)
    return roots


def folder_tree(
    conn: sqlite3.Connection,
    order: str = "ASC",
    page_size: int = -1,
    offset: int = 0,
    include_originals: bool = False,
) -> list[FolderNode]:
    return build_tree(folder_summaries(conn, order, page_size, offset, include_originals))
