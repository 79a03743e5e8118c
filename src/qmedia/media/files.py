from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Iterator

from qmedia.models import IMAGE, VIDEO

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".heic", ".gif", ".png"}
VIDEO_EXTENSIONS = {".mp4", ".mov"}


@dataclass(slots=True)
class FileStat:
    abs_path: Path
    rel_path: str
    size: int
    mtime: float


def is_hidden(path: Path | str) -> bool:
    return os.path.basename(str(path)).startswith(".")


def media_kind(path: Path | str) -> str | None:
    if is_hidden(path):
        return None
    ext = os.path.splitext(str(path))[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return IMAGE
    if ext in VIDEO_EXTENSIONS:
        return VIDEO
    return None


def relative_path(root: Path, path: Path) -> str:
    return path.relative_to(root).as_posix()


def folder_key(rel_path: str) -> str:
    parent = os.path.dirname(rel_path)
    return parent or "."


def _walk_error(exc: OSError) -> None:
    logger.warning("unable to read directory %s: %s", exc.filename, exc.strerror or exc)


def iter_files(root: Path) -> Iterator[FileStat]:
    """Yield every regular, non-hidden file under root in a stable order.

    Unreadable directories and entries are logged and skipped.
    """
    for dirpath, dirnames, filenames in os.walk(root, onerror=_walk_error):
        dirnames.sort()
        for name in sorted(filenames):
            if is_hidden(name):
                continue
            p = Path(dirpath) / name
            try:
                if not p.is_file():
                    continue
                st = p.stat()
            except OSError as exc:
                logger.warning("unable to stat %s: %s", p, exc)
                continue
            yield FileStat(abs_path=p, rel_path=relative_path(root, p), size=st.st_size, mtime=st.st_mtime)
