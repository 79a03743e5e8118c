from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import json
import sqlite3
from typing import Any

from qmedia.ids import tag_id, tag_slug
from qmedia.util.time import SENTINEL_DATE, format_utc, parse_utc

IMAGE = "image"
VIDEO = "video"

MEDIA_COLUMNS = (
    "hash",
    "path",
    "subject",
    "width",
    "height",
    "ratio",
    "padding",
    "date",
    "modified",
    "folder",
    "rating",
    "shutterspeed",
    "aperture",
    "iso",
    "lens",
    "camera",
    "focallength",
    "altitude",
    "latitude",
    "longitude",
    "mediatype",
    "focusdistance",
    "focallength35",
    "color",
    "location",
    "description",
    "title",
    "software",
    "offset",
    "rotation",
)


def column_list(prefix: str = "") -> str:
    # "offset" is an SQL keyword, every column is quoted.
    return ", ".join(f'{prefix}"{name}"' for name in MEDIA_COLUMNS)


class ScanMode(str, Enum):
    default = "default"
    deep = "deep"
    metadata = "metadata"


@dataclass(slots=True, frozen=True)
class Tag:
    key: str
    value: str

    @classmethod
    def from_value(cls, value: str) -> Tag:
        return cls(key=tag_slug(value), value=value)

    @property
    def id(self) -> int:
        return tag_id(self.key)


@dataclass(slots=True)
class MediaRecord:
    hash: int
    path: str
    media_type: str
    folder: str
    modified: datetime
    date: datetime | None = None
    width: int = 0
    height: int = 0
    ratio: float = 0.0
    padding: float = 0.0
    tags: list[Tag] = field(default_factory=list)
    rating: float = 0.0
    shutter_speed: str = ""
    aperture: float = 0.0
    iso: float = 0.0
    lens: str = ""
    camera: str = ""
    focal_length: float = 0.0
    altitude: float = 0.0
    latitude: float = 0.0
    longitude: float = 0.0
    focus_distance: float = 0.0
    focal_length_35: float = 0.0
    color: str = ""
    location: str = ""
    description: str = ""
    title: str = ""
    software: str = ""
    offset: float = 0.0
    rotation: float = 0.0

    @property
    def date_text(self) -> str:
        return format_utc(self.date) if self.date is not None else SENTINEL_DATE

    @property
    def modified_text(self) -> str:
        return format_utc(self.modified)

    def subject_json(self) -> str:
        return json.dumps([{"key": t.key, "value": t.value} for t in self.tags])

    def to_row(self) -> tuple[Any, ...]:
        return (
            self.hash,
            self.path,
            self.subject_json(),
            self.width,
            self.height,
            self.ratio,
            self.padding,
            self.date_text,
            self.modified_text,
            self.folder,
            self.rating,
            self.shutter_speed,
            self.aperture,
            self.iso,
            self.lens,
            self.camera,
            self.focal_length,
            self.altitude,
            self.latitude,
            self.longitude,
            self.media_type,
            self.focus_distance,
            self.focal_length_35,
            self.color,
            self.location,
            self.description,
            self.title,
            self.software,
            self.offset,
            self.rotation,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> MediaRecord:
        subject = json.loads(row["subject"] or "[]")
        date_text = str(row["date"])
        return cls(
            hash=int(row["hash"]),
            path=str(row["path"]),
            media_type=str(row["mediatype"]),
            folder=str(row["folder"]),
            modified=parse_utc(str(row["modified"])),
            date=None if date_text == SENTINEL_DATE else parse_utc(date_text),
            width=int(row["width"] or 0),
            height=int(row["height"] or 0),
            ratio=float(row["ratio"] or 0.0),
            padding=float(row["padding"] or 0.0),
            tags=[Tag(key=str(t["key"]), value=str(t["value"])) for t in subject],
            rating=float(row["rating"] or 0.0),
            shutter_speed=str(row["shutterspeed"] or ""),
            aperture=float(row["aperture"] or 0.0),
            iso=float(row["iso"] or 0.0),
            lens=str(row["lens"] or ""),
            camera=str(row["camera"] or ""),
            focal_length=float(row["focallength"] or 0.0),
            altitude=float(row["altitude"] or 0.0),
            latitude=float(row["latitude"] or 0.0),
            longitude=float(row["longitude"] or 0.0),
            focus_distance=float(row["focusdistance"] or 0.0),
            focal_length_35=float(row["focallength35"] or 0.0),
            color=str(row["color"] or ""),
            location=str(row["location"] or ""),
            description=str(row["description"] or ""),
            title=str(row["title"] or ""),
            software=str(row["software"] or ""),
            offset=float(row["offset"] or 0.0),
            rotation=float(row["rotation"] or 0.0),
        )

    def search_text(self) -> dict[str, str]:
        return {
            "path": self.path,
            "subject": " ".join(t.value for t in self.tags),
            "location": self.location,
            "description": self.description,
            "title": self.title,
            "camera": self.camera,
            "lens": self.lens,
            "folder": self.folder,
        }
