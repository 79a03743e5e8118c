from __future__ import annotations

import hashlib


def path_hash(value: str) -> int:
    """Stable 32-bit id for a relative path, folder key or tag key."""
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def media_id(rel_path: str) -> int:
    return path_hash(rel_path)


def folder_id(key: str) -> int:
    return path_hash(key)


def tag_slug(value: str) -> str:
    return value.strip().lower().replace(" ", "-")


def tag_id(key: str) -> int:
    return path_hash(key)


def parse_media_id(value: str | int) -> int:
    if isinstance(value, int):
        return value
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"invalid media id: {value}") from None
