from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Callable, Protocol

import exiftool
from exiftool.exceptions import ExifToolException
from PIL import Image, UnidentifiedImageError

from qmedia.assets.images import load_oriented
from qmedia.errors import ExtractionError
from qmedia.geo import Geocoder, resolve_location
from qmedia.ids import media_id
from qmedia.media.color import dominant_color
from qmedia.media.dates import resolve_capture_date
from qmedia.media.exif import ExifFields, parse_iso, shutter_fraction, tags_from_subject
from qmedia.media.files import folder_key
from qmedia.models import IMAGE, VIDEO, MediaRecord
from qmedia.util.time import mtime_utc

logger = logging.getLogger(__name__)

LENS_FIELDS = ("LensModel", "LensID")


class MetadataReader(Protocol):
    def read(self, path: Path) -> dict[str, Any]: ...

    def read_lens(self, path: Path) -> str: ...


class ExifToolReader:
    """Two persistent exiftool processes: numeric values for most fields, printable names for the lens."""

    def __init__(self, executable: str | None = None):
        kwargs = {"executable": executable} if executable else {}
        self._numeric = exiftool.ExifToolHelper(common_args=["-n"], **kwargs)
        self._printable = exiftool.ExifToolHelper(common_args=[], **kwargs)

    def __enter__(self) -> ExifToolReader:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def read(self, path: Path) -> dict[str, Any]:
        try:
            rows = self._numeric.get_metadata(str(path))
        except (ExifToolException, OSError) as exc:
            raise ExtractionError(f"exiftool failed for {path}: {exc}") from exc
        return dict(rows[0]) if rows else {}

    def read_lens(self, path: Path) -> str:
        try:
            rows = self._printable.get_tags(str(path), list(LENS_FIELDS))
        except (ExifToolException, OSError) as exc:
            raise ExtractionError(f"exiftool failed reading lens for {path}: {exc}") from exc
        if not rows:
            return ""
        _, lens = ExifFields(rows[0]).first_text(*LENS_FIELDS)
        return lens

    def close(self) -> None:
        for helper in (self._numeric, self._printable):
            if helper.running:
                helper.terminate()


@dataclass(slots=True)
class Extracted:
    record: MediaRecord
    raster: Image.Image | None = None


def build_record(
    kind: str,
    rel_path: str,
    mtime: float,
    fields: ExifFields,
    lens: str = "",
    raster: Image.Image | None = None,
    geocoder: Geocoder | None = None,
    color: str = "",
) -> MediaRecord:
    capture = resolve_capture_date(fields, rel_path)

    rotation = fields.loose_number("Rotation")
    if kind == IMAGE:
        if raster is None:
            raise ExtractionError(f"no decoded image for {rel_path}")
        width, height = raster.size
        color = dominant_color(raster)
    else:
        width = int(fields.number("ImageWidth"))
        height = int(fields.number("ImageHeight"))
        if int(rotation) in (90, 270):
            width, height = height, width

    ratio = height / width if width else 0.0
    shutter = fields.number("ShutterSpeed")
    latitude = fields.loose_number("GPSLatitude")
    longitude = fields.loose_number("GPSLongitude")
    description = fields.text("Description") or fields.text("ImageDescription")

    return MediaRecord(
        hash=media_id(rel_path),
        path=rel_path,
        media_type=kind,
        folder=folder_key(rel_path),
        modified=mtime_utc(mtime),
        date=capture.date,
        width=width,
        height=height,
        ratio=ratio,
        padding=ratio * 100,
        tags=tags_from_subject(fields.get("Subject")),
        rating=fields.number("Rating"),
        shutter_speed=shutter_fraction(shutter) if shutter else "",
        aperture=fields.number("Aperture"),
        iso=parse_iso(fields),
        lens=lens,
        camera=fields.text("Model"),
        focal_length=fields.number("FocalLength"),
        altitude=fields.loose_number("GPSAltitude"),
        latitude=latitude,
        longitude=longitude,
        focus_distance=fields.loose_number("FocusDistance"),
        focal_length_35=fields.number("FocalLengthIn35mmFormat"),
        color=color,
        location=resolve_location(geocoder, latitude, longitude),
        description=description,
        title=fields.text("Title"),
        software=fields.strict_text("Software"),
        offset=capture.offset,
        rotation=rotation,
    )


class MetadataExtractor:
    def __init__(
        self,
        media_root: Path,
        reader: MetadataReader,
        geocoder: Geocoder | None = None,
        frame_source: Callable[[MediaRecord], Image.Image] | None = None,
    ):
        self.media_root = Path(media_root)
        self.reader = reader
        self.geocoder = geocoder
        self.frame_source = frame_source

    def extract(self, kind: str, rel_path: str) -> Extracted:
        if kind not in (IMAGE, VIDEO):
            raise ExtractionError(f"unsupported media: {rel_path}")
        abs_path = self.media_root / rel_path
        try:
            mtime = abs_path.stat().st_mtime
        except OSError as exc:
            raise ExtractionError(f"unable to stat {abs_path}: {exc}") from exc

        fields = ExifFields(self.reader.read(abs_path))
        lens = self.reader.read_lens(abs_path)

        raster: Image.Image | None = None
        if kind == IMAGE:
            try:
                raster = load_oriented(abs_path)
            except (OSError, UnidentifiedImageError, ValueError) as exc:
                raise ExtractionError(f"unable to decode {rel_path}: {exc}") from exc

        record = build_record(kind, rel_path, mtime, fields, lens, raster, self.geocoder)
        if kind == VIDEO and self.frame_source is not None:
            record.color = dominant_color(self.frame_source(record))
        logger.debug("extracted %s (%s)", rel_path, record.date_text)
        return Extracted(record=record, raster=raster)
