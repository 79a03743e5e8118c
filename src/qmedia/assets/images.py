from __future__ import annotations

from contextlib import contextmanager
import logging
import os
from pathlib import Path
import tempfile
from typing import Iterator

from PIL import Image, ImageOps
from pillow_heif import register_heif_opener

logger = logging.getLogger(__name__)

HEIC_EXTENSIONS = {".heic", ".heif"}

_heif_registered = False


def register_heif() -> None:
    """Register the HEIF/HEIC opener with Pillow (idempotent)."""
    global _heif_registered
    if _heif_registered:
        return
    register_heif_opener()
    _heif_registered = True
    logger.debug("HEIF support registered")


def is_heic(path: Path) -> bool:
    return path.suffix.lower() in HEIC_EXTENSIONS


@contextmanager
def decodable_source(path: Path) -> Iterator[Path]:
    """Yield a path Pillow can decode; HEIC files go through a scoped JPEG copy."""
    if not is_heic(path):
        yield path
        return
    register_heif()
    with tempfile.TemporaryDirectory(prefix="qmedia-heic-") as tmp:
        target = Path(tmp) / f"{path.stem}.jpg"
        with Image.open(path) as img:
            exif = img.info.get("exif") or b""
            img.convert("RGB").save(target, "JPEG", quality=95, exif=exif)
        yield target


def load_oriented(path: Path) -> Image.Image:
    """Decode an image fully into memory with EXIF orientation applied."""
    with decodable_source(path) as source:
        with Image.open(source) as img:
            oriented = ImageOps.exif_transpose(img)
            oriented.load()
    if oriented.mode not in ("RGB", "RGBA"):
        oriented = oriented.convert("RGB")
    return oriented


def resized_to_width(img: Image.Image, width: int) -> Image.Image:
    height = max(1, round(img.height * width / img.width))
    return img.resize((width, height), Image.LANCZOS)


def write_jpeg(img: Image.Image, dest: Path, quality: int) -> None:
    """Encode to a temporary sibling and rename so readers never see a partial file."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            img.convert("RGB").save(fh, "JPEG", quality=quality)
        os.replace(tmp_name, dest)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_bytes(data: bytes, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=dest.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, dest)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def render_thumbnail(img: Image.Image, width: int, dest: Path, quality: int = 90) -> None:
    write_jpeg(resized_to_width(img, width), dest, quality)
