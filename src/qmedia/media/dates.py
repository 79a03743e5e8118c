from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import os
import re

from dateutil import parser as date_parser

from qmedia.errors import DateResolutionError
from qmedia.media.exif import ExifFields
from qmedia.util.time import format_utc

# Capture-date fields in priority order; TrackCreateDate only exists on videos.
DATE_FIELDS = (
    "SubSecDateTimeOriginal",
    "SubSecCreateDate",
    "DateTimeOriginal",
    "TrackCreateDate",
)

_EXIF_DATE_RE = re.compile(
    r"^\s*(\d{4})[:\-](\d{2})[:\-](\d{2})[ T](\d{2}):(\d{2})(?::(\d{2}))?(?:\.(\d+))?"
)
_OFFSET_SUFFIX_RE = re.compile(r"\d{2}:\d{2}(?::\d{2})?(?:\.\d+)?\s*([+-])(\d{1,2}(?::\d{2})?)$")

_LAYOUTS = {
    14: "%Y%m%d%H%M%S",
    12: "%Y%m%d%H%M",
    10: "%Y%m%d%H",
    8: "%Y%m%d",
}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(slots=True)
class CaptureDate:
    date: datetime
    offset: float
    source: str


def parse_wall_clock(value: str) -> datetime:
    """Parse a date string into naive wall-clock components, ignoring any zone suffix."""
    match = _EXIF_DATE_RE.match(value)
    if match:
        year, month, day, hour, minute, second, frac = match.groups()
        micros = int((frac + "000000")[:6]) if frac else 0
        return datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second or 0), micros
        )
    return _free_form(value)


def _free_form(value: str) -> datetime:
    try:
        return date_parser.parse(value, ignoretz=True)
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"unable to parse date {value!r}") from exc


def parse_offset(text: str) -> float:
    """Parse "H:MM" or "M" into minutes."""
    hours, mins = 0, 0
    parts = text.strip().split(":", 1)
    if len(parts) == 1:
        mins = int(parts[0])
    else:
        hours = int(parts[0])
        mins = int(parts[1])
    if not (0 <= mins <= 59 and 0 <= hours <= 23):
        raise ValueError(f"invalid time: {text}")
    return float(hours * 60 + mins)


def to_utc(date_string: str, offset_minutes: float) -> datetime:
    wall = parse_wall_clock(date_string)
    return (wall - timedelta(minutes=offset_minutes)).replace(tzinfo=timezone.utc)


def date_from_filename(name: str) -> datetime:
    """Guess a capture instant from a file name. The result is always UTC."""
    base = os.path.basename(name)
    token = base.split(".", 1)[0]
    if len(token) >= 11 and token.isdigit():
        return _EPOCH + timedelta(milliseconds=int(token))

    idx = base.find("20")
    if idx < 0:
        idx = base.find("19")
    raw = base[idx:] if idx >= 0 else base

    collected: list[str] = []
    for ch in raw:
        if ch.isdigit() or ch in "_-.":
            collected.append(ch)
        elif ch.isalpha():
            break

    digits = "".join(ch for ch in collected if ch.isdigit())
    if len(digits) < 8:
        return _free_form(raw).replace(tzinfo=timezone.utc)
    digits = digits[:14]
    if len(digits) not in _LAYOUTS:
        digits = digits[:8]
    try:
        parsed = datetime.strptime(digits, _LAYOUTS[len(digits)])
    except ValueError:
        parsed = _free_form(digits)
    return parsed.replace(tzinfo=timezone.utc)


def resolve_capture_date(fields: ExifFields, filename: str) -> CaptureDate:
    source, date_string = fields.first_text(*DATE_FIELDS)
    if not date_string:
        try:
            date_string = format_utc(date_from_filename(filename))
        except (ValueError, OverflowError) as exc:
            raise DateResolutionError(f"no date found for {filename}") from exc
        source = "filename"

    try:
        if "TimeZone" in fields:
            offset = fields.loose_number("TimeZone")
            if fields.loose_number("DaylightSavings") == 1:
                offset += 60
            return CaptureDate(to_utc(date_string, offset), offset, source)

        suffix = _OFFSET_SUFFIX_RE.search(date_string)
        if suffix:
            sign, text = suffix.groups()
            offset = parse_offset(text)
            if sign == "-":
                offset = -offset
            return CaptureDate(to_utc(date_string, offset), offset, source)

        gps_text = fields.text("GPSDateTime")
        if gps_text:
            gps = parse_wall_clock(gps_text)
            local = parse_wall_clock(date_string)
            offset = (local - gps).total_seconds() / 60
            return CaptureDate(gps.replace(tzinfo=timezone.utc), offset, source)

        return CaptureDate(to_utc(date_string, 0.0), 0.0, source)
    except (ValueError, OverflowError) as exc:
        raise DateResolutionError(f"unable to resolve date {date_string!r} for {filename}: {exc}") from exc
