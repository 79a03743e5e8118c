from __future__ import annotations

from datetime import date, datetime, timezone

SENTINEL_DATE = "0001-01-01T00:00:00.000Z"
SECOND_FORMAT = "%Y-%m-%dT%H:%M:%S"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def format_utc(value: datetime) -> str:
    """Render an instant in the fixed millisecond format stored in the index."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return f"{value.strftime(SECOND_FORMAT)}.{value.microsecond // 1000:03d}Z"


def parse_utc(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1]
    head, _, frac = text.partition(".")
    parsed = datetime.strptime(head, SECOND_FORMAT)
    micros = int((frac + "000000")[:6]) if frac.isdigit() else 0
    return parsed.replace(microsecond=micros, tzinfo=timezone.utc)


def mtime_utc(mtime: float) -> datetime:
    return datetime.fromtimestamp(mtime, timezone.utc)


def is_sentinel(value: datetime | str | None) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == SENTINEL_DATE or value.startswith("0001-01-01")
    return value.year <= 1


def same_second(stored: str, mtime: float) -> bool:
    """Compare a stored modified time against a file mtime at second precision."""
    return stored[:19] == mtime_utc(mtime).strftime(SECOND_FORMAT)
