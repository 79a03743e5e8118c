from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
import math
import re
from typing import Any, Mapping

from qmedia.errors import ExtractionError
from qmedia.models import Tag

_NON_DIGITS = re.compile(r"[^0-9]")

NUMBER = "number"
TEXT = "text"
ITEMS = "items"


@dataclass(slots=True, frozen=True)
class FieldValue:
    """One metadata field as reported by exiftool, decoded once into number, text or list form."""

    kind: str
    number: float = 0.0
    text: str = ""
    items: tuple[str, ...] = ()

    @classmethod
    def decode(cls, raw: Any) -> FieldValue | None:
        if raw is None:
            return None
        if isinstance(raw, bool):
            return cls(kind=NUMBER, number=float(raw), text=str(raw))
        if isinstance(raw, (int, float)):
            return cls(kind=NUMBER, number=float(raw), text=str(raw))
        if isinstance(raw, (list, tuple)):
            items = tuple(str(v) for v in raw if v is not None and str(v).strip())
            return cls(kind=ITEMS, items=items, text=", ".join(items))
        return cls(kind=TEXT, text=str(raw).strip())

    def as_float(self, name: str) -> float:
        if self.kind == NUMBER:
            return self.number
        if self.kind == TEXT:
            try:
                value = float(self.text)
            except ValueError:
                raise ExtractionError(f"unparseable numeric field {name}: {self.text!r}") from None
            return value if math.isfinite(value) else 0.0
        raise ExtractionError(f"unparseable numeric field {name}: {list(self.items)!r}")


class ExifFields:
    """Typed view over the raw dictionary returned for one file."""

    def __init__(self, raw: Mapping[str, Any]):
        self._values: dict[str, FieldValue] = {}
        for key, value in raw.items():
            name = key.split(":")[-1]
            decoded = FieldValue.decode(value)
            if decoded is not None:
                self._values.setdefault(name, decoded)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str) -> FieldValue | None:
        return self._values.get(name)

    def text(self, name: str) -> str:
        value = self._values.get(name)
        return value.text if value is not None else ""

    def strict_text(self, name: str) -> str:
        """Text of a field only when exiftool reported it as a string."""
        value = self._values.get(name)
        if value is None or value.kind != TEXT:
            return ""
        return value.text

    def number(self, name: str, default: float = 0.0) -> float:
        value = self._values.get(name)
        if value is None:
            return default
        return value.as_float(name)

    def loose_number(self, name: str, default: float = 0.0) -> float:
        """Like number() but tolerates non-numeric values."""
        try:
            return self.number(name, default)
        except ExtractionError:
            return default

    def first_text(self, *names: str) -> tuple[str, str]:
        for name in names:
            text = self.text(name)
            if text and not text.startswith("0000"):
                return name, text
        return "", ""


def parse_iso(fields: ExifFields) -> float:
    value = fields.get("ISO")
    if value is None:
        return 0.0
    if value.kind == NUMBER:
        return value.number
    digits = _NON_DIGITS.sub("", value.text)
    if not digits:
        raise ExtractionError(f"unparseable numeric field ISO: {value.text!r}")
    return float(digits)


def shutter_fraction(value: float) -> str:
    """Render an exposure time as an exact or closest fraction with denominator <= 1000."""
    if value <= 0 or not math.isfinite(value):
        return "0/1"
    num = int(value * 1_000_000)
    denom = 1_000_000
    divisor = math.gcd(num, denom)
    num //= divisor
    denom //= divisor
    if abs(num / denom - value) < 1e-9:
        return f"{num}/{denom}"
    best = Fraction(value).limit_denominator(1000)
    if best.numerator == 0:
        best = Fraction(1, 1000)
    return f"{best.numerator}/{best.denominator}"


def tags_from_subject(value: FieldValue | None) -> list[Tag]:
    if value is None:
        return []
    if value.kind == ITEMS:
        raw = list(value.items)
    elif value.text:
        raw = [value.text]
    else:
        raw = []
    out: list[Tag] = []
    seen: set[str] = set()
    for item in raw:
        tag = Tag.from_value(item)
        if not tag.key or tag.key in seen:
            continue
        seen.add(tag.key)
        out.append(tag)
    return out
