from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
import threading
import time
from typing import Any, Callable

from qmedia.assets.pipeline import AssetPipeline
from qmedia.assets.sizes import ladder_for
from qmedia.db import Database
from qmedia.errors import GenerationError, QmediaError, ScanCanceled
from qmedia.media.extractor import MetadataExtractor
from qmedia.models import VIDEO, MediaRecord, ScanMode
from qmedia.notify import CANCELED, COMPLETE, SCANNING, Notifier
from qmedia.queries.media import count_media, list_media
from qmedia.scanner import (
    DELETED,
    FAILED,
    MODIFIED,
    NEW,
    REFRESH,
    UNREADABLE,
    UNSUPPORTED,
    Change,
    ChangeDetector,
)
from qmedia.writer import IndexWriter

logger = logging.getLogger(__name__)

COMPLETED = "completed"
CANCELED_STATUS = "canceled"
ALREADY_RUNNING = "already_running"
FAILED_STATUS = "failed"

SWEEP_PROGRESS_EVERY = 10

ExtractorFactory = Callable[[], AbstractContextManager[MetadataExtractor]]


@dataclass(slots=True)
class ScanStats:
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0
    unsupported: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass(slots=True)
class ScanResult:
    status: str
    message: str
    stats: ScanStats

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "message": self.message, "stats": asdict(self.stats)}


def format_elapsed(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return f"{out}{secs}s"


class _Run:
    """In-progress flag plus a single-use cancellation signal for one kind of run."""

    __slots__ = ("in_progress", "cancel")

    def __init__(self) -> None:
        self.in_progress = False
        self.cancel: threading.Event | None = None


class ScanOrchestrator:
    def __init__(
        self,
        media_root: Path,
        db: Database,
        writer: IndexWriter,
        assets: AssetPipeline,
        extractor_factory: ExtractorFactory,
        notifier: Notifier | None = None,
        pregenerate_thumbs: bool = False,
        pregenerate_video: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.media_root = Path(media_root)
        self.db = db
        self.writer = writer
        self.assets = assets
        self.extractor_factory = extractor_factory
        self.notifier = notifier or Notifier()
        self.pregenerate_thumbs = pregenerate_thumbs
        self.pregenerate_video = pregenerate_video
        self._clock = clock
        self._lock = threading.Lock()
        self._scan = _Run()
        self._sweep = _Run()

    # run state

    def _acquire(self, run: _Run) -> threading.Event | None:
        with self._lock:
            if self._scan.in_progress or self._sweep.in_progress:
                return None
            run.in_progress = True
            run.cancel = threading.Event()
            return run.cancel

    def _release(self, run: _Run, signal: threading.Event) -> None:
        with self._lock:
            if run.cancel is signal:
                run.cancel = None
                run.in_progress = False

    def is_in_progress(self) -> bool:
        with self._lock:
            return self._scan.in_progress

    def is_sweep_in_progress(self) -> bool:
        with self._lock:
            return self._sweep.in_progress

    def cancel(self) -> bool:
        """Signal any active scan or sweep to stop; the in-progress flag clears immediately."""
        canceled = False
        with self._lock:
            for run in (self._scan, self._sweep):
                if run.cancel is not None:
                    run.cancel.set()
                    canceled = True
                run.cancel = None
                run.in_progress = False
        return canceled

    # full crawl

    def start_scan(self, mode: ScanMode = ScanMode.default) -> ScanResult:
        stats = ScanStats()
        signal = self._acquire(self._scan)
        if signal is None:
            self.notifier.notify("Scan already in progress.", SCANNING)
            return ScanResult(ALREADY_RUNNING, "scan already in progress", stats)
        try:
            return self._run_scan(ScanMode(mode), signal, stats)
        except ScanCanceled as exc:
            message = f"Scan canceled while {exc.phase}."
            self.notifier.notify(message, CANCELED)
            return ScanResult(CANCELED_STATUS, message, stats)
        except Exception as exc:
            logger.exception("scan failed")
            self.notifier.notify("Scan encountered an error but will continue.", SCANNING)
            return ScanResult(FAILED_STATUS, f"scan failed: {exc}", stats)
        finally:
            self._release(self._scan, signal)

    def start_scan_background(self, mode: ScanMode = ScanMode.default) -> threading.Thread:
        thread = threading.Thread(target=self.start_scan, args=(mode,), name="qmedia-scan", daemon=True)
        thread.start()
        return thread

    def _run_scan(self, mode: ScanMode, signal: threading.Event, stats: ScanStats) -> ScanResult:
        started = self._clock()
        self.notifier.notify(f"Scan started ({mode.value}) at {self.media_root}.", SCANNING)
        with self.db.read() as conn:
            records = list_media(conn)
        scan_errors = self.writer.scan_errors()
        detector = ChangeDetector(self.media_root, signal)

        with self.extractor_factory() as extractor:
            for change in detector.reconcile(records, mode):
                if change.kind == DELETED:
                    self._remove(change, stats)
                elif change.kind == MODIFIED:
                    self._index(change, extractor, regenerate=True, stats=stats, updating=True)
                elif change.kind == REFRESH:
                    self._index(change, extractor, regenerate=mode == ScanMode.deep, stats=stats, updating=True)
                elif change.kind == UNREADABLE:
                    stats.errors += 1
                else:
                    stats.unchanged += 1

            indexed = {r.path for r in records}
            for change in detector.discover(indexed, scan_errors):
                if change.kind == NEW:
                    self._index(change, extractor, regenerate=False, stats=stats, updating=False)
                elif change.kind == UNSUPPORTED:
                    stats.unsupported += 1
                    logger.debug("unsupported file %s", change.rel_path)
                elif change.kind == FAILED:
                    stats.skipped += 1
                    logger.debug("skipping %s, failed previously and unchanged since", change.rel_path)

        with self.db.read() as conn:
            total = count_media(conn)
        elapsed = format_elapsed(self._clock() - started)
        message = (
            f"Scan complete. {total} media items scanned in {elapsed}. "
            f"{stats.unsupported} unsupported items skipped. "
            f"{stats.errors + stats.skipped} items with errors occurred during scan."
        )
        self.notifier.notify(message, COMPLETE)
        return ScanResult(COMPLETED, message, stats)

    def _remove(self, change: Change, stats: ScanStats) -> None:
        assert change.record is not None
        try:
            self.writer.delete(change.rel_path, change.record, remove_thumbnails=True)
        except QmediaError as exc:
            stats.errors += 1
            logger.error("unable to remove %s: %s", change.rel_path, exc)
            return
        stats.removed += 1
        self.notifier.notify(f"Removed {change.rel_path}.", SCANNING)

    def _index(
        self,
        change: Change,
        extractor: MetadataExtractor,
        regenerate: bool,
        stats: ScanStats,
        updating: bool,
    ) -> None:
        try:
            self._ingest(change, extractor, regenerate)
        except ScanCanceled:
            raise
        except Exception as exc:
            # One bad file never aborts the crawl.
            if isinstance(exc, QmediaError):
                logger.error("unable to index %s: %s", change.rel_path, exc)
            else:
                logger.exception("unexpected failure indexing %s", change.rel_path)
            stats.errors += 1
            self._record_error(change.rel_path, exc)
            return
        if updating:
            stats.updated += 1
            self.notifier.notify(f"Updated {change.rel_path}.", SCANNING)
        else:
            stats.added += 1
            self.notifier.notify(f"Added {change.rel_path}.", SCANNING)

    def _ingest(self, change: Change, extractor: MetadataExtractor, regenerate: bool) -> MediaRecord:
        assert change.media_kind is not None
        record = extractor.extract(change.media_kind, change.rel_path).record
        if regenerate or self.pregenerate_thumbs:
            self.assets.generate_ladder(record, force=regenerate)
        if record.media_type == VIDEO and (regenerate or self.pregenerate_video):
            self.assets.transcode(record)
        self.writer.upsert(record)
        return record

    def _record_error(self, rel_path: str, exc: Exception) -> None:
        try:
            self.writer.record_scan_error(rel_path, str(exc), datetime.now(timezone.utc))
        except QmediaError:
            logger.exception("unable to record scan error for %s", rel_path)

    # thumbnail sweep

    def start_thumbnail_sweep(self) -> ScanResult:
        stats = ScanStats()
        signal = self._acquire(self._sweep)
        if signal is None:
            self.notifier.notify("Thumbnail scan already in progress.", SCANNING)
            return ScanResult(ALREADY_RUNNING, "scan already in progress", stats)
        try:
            return self._run_sweep(signal, stats)
        except ScanCanceled as exc:
            message = f"Thumbnail scan canceled while {exc.phase}."
            self.notifier.notify(message, CANCELED)
            return ScanResult(CANCELED_STATUS, message, stats)
        except Exception as exc:
            logger.exception("thumbnail sweep failed")
            self.notifier.notify("Thumbnail scan encountered an error but will continue.", SCANNING)
            return ScanResult(FAILED_STATUS, f"thumbnail scan failed: {exc}", stats)
        finally:
            self._release(self._sweep, signal)

    def _run_sweep(self, signal: threading.Event, stats: ScanStats) -> ScanResult:
        started = self._clock()
        with self.db.read() as conn:
            records = list_media(conn)
        self.notifier.notify(f"Checking thumbnails for {len(records)} media items.", SCANNING)

        checked = 0
        missing = 0
        for idx, record in enumerate(records, start=1):
            if signal.is_set():
                raise ScanCanceled("generating thumbnails")
            checked += len(ladder_for(record.width))
            sizes = self.assets.missing_sizes(record)
            for size in sizes:
                missing += 1
                try:
                    self.assets.generate_thumbnail(record, size)
                except GenerationError as exc:
                    stats.errors += 1
                    logger.error("thumbnail %s@%d failed: %s", record.path, size, exc)
            if idx % SWEEP_PROGRESS_EVERY == 0:
                self.notifier.notify(f"Checked thumbnails for {idx} of {len(records)} media items.", SCANNING)

        elapsed = format_elapsed(self._clock() - started)
        message = (
            f"Scan complete. {checked} thumbnails checked in {elapsed}. "
            f"{missing} missing. {stats.errors} errors occurred."
        )
        self.notifier.notify(message, COMPLETE)
        return ScanResult(COMPLETED, message, stats)
