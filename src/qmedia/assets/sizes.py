from __future__ import annotations

from urllib.parse import quote

from qmedia.errors import ThumbnailOutOfRange

LADDER = (200, 400, 800, 1200, 1800, 2400, 4000)


def ladder_for(width: int) -> list[int]:
    """Rungs at or below width, plus width itself when it falls between rungs."""
    if width <= 0:
        return []
    sizes = [size for size in LADDER if size <= width]
    if width < LADDER[-1] and width not in LADDER:
        sizes.append(width)
    return sizes


def is_valid_size(size: int, width: int) -> bool:
    if size in LADDER and size <= width:
        return True
    return size == width and 0 < width <= LADDER[-1]


def check_size(size: int, width: int) -> None:
    if not is_valid_size(size, width):
        raise ThumbnailOutOfRange(size, width)


def srcset(media_hash: int, width: int, path: str = "", include_original: bool = False) -> str:
    entries = [f"/api/img/{media_hash}/{size} {size}w" for size in ladder_for(width)]
    if include_original and path:
        entries.append(f"/api/media-originals/{quote(path)} {width}w")
    return ", ".join(entries)
