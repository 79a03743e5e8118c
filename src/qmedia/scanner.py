from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from pathlib import Path
import threading
from typing import Iterable, Iterator

from qmedia.errors import ScanCanceled
from qmedia.media.files import iter_files, media_kind
from qmedia.models import MediaRecord, ScanMode
from qmedia.util.time import mtime_utc, same_second

logger = logging.getLogger(__name__)

NEW = "new"
MODIFIED = "modified"
REFRESH = "refresh"
DELETED = "deleted"
UNCHANGED = "unchanged"
FAILED = "failed"
UNSUPPORTED = "unsupported"
UNREADABLE = "unreadable"

RECONCILING = "checking for modified and deleted items"
DISCOVERING = "checking for new items"


@dataclass(slots=True)
class Change:
    kind: str
    rel_path: str
    media_kind: str | None = None
    record: MediaRecord | None = None


class ChangeDetector:
    """Diffs the media tree against an index snapshot, one Change per path."""

    def __init__(self, media_root: Path, cancel: threading.Event | None = None):
        self.media_root = Path(media_root)
        self.cancel = cancel or threading.Event()

    def _check(self, phase: str) -> None:
        if self.cancel.is_set():
            raise ScanCanceled(phase)

    def reconcile(self, records: Iterable[MediaRecord], mode: ScanMode = ScanMode.default) -> Iterator[Change]:
        for record in records:
            self._check(RECONCILING)
            path = self.media_root / record.path
            try:
                st = path.stat()
            except (FileNotFoundError, NotADirectoryError):
                yield Change(DELETED, record.path, record.media_type, record)
                continue
            except OSError as exc:
                logger.warning("unable to stat %s: %s", path, exc)
                yield Change(UNREADABLE, record.path, record.media_type, record)
                continue
            if not same_second(record.modified_text, st.st_mtime):
                yield Change(MODIFIED, record.path, record.media_type, record)
            elif mode in (ScanMode.deep, ScanMode.metadata):
                yield Change(REFRESH, record.path, record.media_type, record)
            else:
                yield Change(UNCHANGED, record.path, record.media_type, record)

    def discover(self, indexed: set[str], scan_errors: dict[str, datetime] | None = None) -> Iterator[Change]:
        scan_errors = scan_errors or {}
        for stat in iter_files(self.media_root):
            self._check(DISCOVERING)
            if stat.rel_path in indexed:
                continue
            failed_at = scan_errors.get(stat.rel_path)
            if failed_at is not None and mtime_utc(stat.mtime) <= failed_at:
                yield Change(FAILED, stat.rel_path)
                continue
            kind = media_kind(stat.rel_path)
            if kind is None:
                yield Change(UNSUPPORTED, stat.rel_path)
            else:
                yield Change(NEW, stat.rel_path, kind)
