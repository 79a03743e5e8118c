from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
import json
import re
from typing import Any, Mapping

from qmedia.util.time import SENTINEL_DATE

ORDER_COLUMNS = ("date", "modified")
DIRECTIONS = ("DESC", "ASC")
MAX_PAGE_SIZE = 5000

_TERM_STRIP = re.compile(r"[^\w ]|_")


@dataclass(slots=True)
class FilterParams:
    rating: float = 0.0
    date_from: str = ""
    date_to: str = ""
    camera: str = ""
    lens: str = ""
    media_type: str = ""
    term: str = ""
    folder: str = ""
    subject: str = ""
    software: str = ""
    focal_length_35: float = 0.0
    order_by: str = "date"
    direction: str = "DESC"
    page_size: int = 1000
    cursor: int = 0

    def normalized(self) -> FilterParams:
        order_by = self.order_by if self.order_by in ORDER_COLUMNS else "date"
        direction = self.direction.upper() if self.direction.upper() in DIRECTIONS else "DESC"
        page_size = min(max(1, int(self.page_size)), MAX_PAGE_SIZE)
        return replace(
            self,
            order_by=order_by,
            direction=direction,
            page_size=page_size,
            cursor=max(0, int(self.cursor)),
            term=sanitize_term(self.term),
        )

    def fingerprint(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)


@dataclass(slots=True)
class Predicate:
    """FROM/WHERE fragment for the media table, aliased as m."""

    joins: list[str] = field(default_factory=list)
    clauses: list[str] = field(default_factory=list)
    args: list[Any] = field(default_factory=list)

    def where(self, clause: str, *args: Any) -> Predicate:
        self.clauses.append(clause)
        self.args.extend(args)
        return self

    def sql(self) -> str:
        out = "FROM media m"
        if self.joins:
            out += " " + " ".join(self.joins)
        if self.clauses:
            out += " WHERE " + " AND ".join(self.clauses)
        return out


def sanitize_term(term: str) -> str:
    return " ".join(_TERM_STRIP.sub("", term or "").split())


def fts_query(term: str) -> str:
    # Each token is quoted so FTS5 operators in user input are matched literally.
    return " ".join(f'"{token}"*' for token in term.split())


def lens_variants(lens: str, aliases: Mapping[str, str]) -> list[str]:
    """All lens names equivalent to lens under the alias map (name -> group name)."""
    out = [lens]
    group = aliases.get(lens)
    if group is not None:
        out.extend(name for name, value in aliases.items() if value == group)
        out.append(group)
    else:
        out.extend(name for name, value in aliases.items() if value == lens)
    unique: list[str] = []
    for name in out:
        if name not in unique:
            unique.append(name)
    return unique


def build_predicate(params: FilterParams, aliases: Mapping[str, str] | None = None) -> Predicate:
    pred = Predicate()
    term = sanitize_term(params.term)
    if term:
        pred.joins.append("INNER JOIN images_virtual v ON m.hash = v.hash")
    if params.subject:
        pred.joins.append("INNER JOIN images_tags it ON m.hash = it.image_id")
        pred.joins.append("INNER JOIN tags t ON it.tag_id = t.id")

    pred.where("m.date != ?", SENTINEL_DATE)
    if term:
        pred.where("images_virtual MATCH ?", fts_query(term))
    if params.subject:
        pred.where("t.key = ?", params.subject)
    if params.rating:
        pred.where("m.rating >= ?", params.rating)
    if params.date_from:
        pred.where("m.date >= ?", params.date_from)
    if params.date_to:
        pred.where("m.date <= ?", params.date_to)
    if params.camera:
        pred.where("m.camera = ?", params.camera)
    if params.lens:
        variants = lens_variants(params.lens, aliases or {})
        marks = ", ".join("?" for _ in variants)
        pred.where(f"m.lens IN ({marks})", *variants)
    if params.folder:
        pred.where("m.folder = ?", params.folder)
    if params.media_type:
        pred.where("m.mediatype = ?", params.media_type)
    if params.software:
        pred.where("m.software = ?", params.software)
    if params.focal_length_35:
        pred.where("m.focallength35 = ?", params.focal_length_35)
    return pred
