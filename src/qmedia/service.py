from __future__ import annotations

from contextlib import contextmanager
import json
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from pydantic import BaseModel

from qmedia.assets import video
from qmedia.assets.pipeline import AssetPipeline, Thumbnail
from qmedia.assets.resize_client import ResizeServiceClient
from qmedia.cache import CachedResponse, ResponseCache
from qmedia.config import AppConfig
from qmedia.db import Database
from qmedia.geo import Geocoder, geocoder_from_config
from qmedia.ids import parse_media_id
from qmedia.media.extractor import ExifToolReader, MetadataExtractor
from qmedia.models import ScanMode
from qmedia.notify import Notifier
from qmedia.orchestrator import ExtractorFactory, ScanOrchestrator
from qmedia.queries import folders as folders_q
from qmedia.queries import gear as gear_q
from qmedia.queries import media as media_q
from qmedia.queries import neighbors as neighbors_q
from qmedia.queries import timeline as timeline_q
from qmedia.queries.filters import FilterParams
from qmedia.output_models import MediaDetailOutput
from qmedia.util.time import utc_today
from qmedia.writer import IndexWriter


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


class QmediaService:
    def __init__(
        self,
        config: AppConfig,
        extractor_factory: ExtractorFactory | None = None,
        geocoder: Geocoder | None = None,
    ):
        self.config = config
        self.db = Database(config.db_path, busy_timeout_ms=config.scan.busy_timeout_ms)
        self.db.initialize()
        self.cache = ResponseCache(max_entries=config.cache.max_entries, dev=config.dev)
        resize_client = None
        if config.thumbs.resize_service:
            resize_client = ResizeServiceClient(config.thumbs.resize_service, quality=config.thumbs.quality)
        self.assets = AssetPipeline(
            cache_dir=config.cache_dir,
            media_root=config.media_root,
            quality=config.thumbs.quality,
            transcode_resolution=config.video.transcode_resolution,
            resize_client=resize_client,
        )
        self.writer = IndexWriter(self.db, self.cache, self.assets, retries=config.scan.write_retries)
        self.notifier = Notifier()
        self.geocoder = geocoder if geocoder is not None else geocoder_from_config(config.geo)
        self.orchestrator = ScanOrchestrator(
            media_root=config.media_root,
            db=self.db,
            writer=self.writer,
            assets=self.assets,
            extractor_factory=extractor_factory or self._exiftool_extractor,
            notifier=self.notifier,
            pregenerate_thumbs=config.thumbs.pregenerate,
            pregenerate_video=config.video.pregenerate,
        )

    @property
    def aliases(self) -> dict[str, str]:
        return self.config.aliases.lenses

    @contextmanager
    def _exiftool_extractor(self) -> Iterator[MetadataExtractor]:
        with ExifToolReader() as reader:
            yield MetadataExtractor(
                self.config.media_root,
                reader,
                geocoder=self.geocoder,
                frame_source=self.assets.frame_preview,
            )

    # cache

    def cached(self, url: str, build: Callable[[], Any], caller: str = "", fingerprint: str = "") -> CachedResponse:
        key = self.cache.key(url, caller, fingerprint)
        return self.cache.get_or_build(key, lambda: json.dumps(_dump(build())).encode("utf-8"))

    def _read(self, url: str, build: Callable[[], Any], caller: str = "", fingerprint: str = "") -> Any:
        return json.loads(self.cached(url, build, caller, fingerprint).body)

    # scanning

    def scan(self, mode: ScanMode | str = ScanMode.default) -> dict[str, Any]:
        return self.orchestrator.start_scan(ScanMode(mode)).to_dict()

    def thumbnail_sweep(self) -> dict[str, Any]:
        return self.orchestrator.start_thumbnail_sweep().to_dict()

    def cancel(self) -> bool:
        return self.orchestrator.cancel()

    def status(self) -> dict[str, Any]:
        with self.db.read() as conn:
            media_count = media_q.count_media(conn)
            folder_count = media_q.folder_count(conn)
            tag_count = int(conn.execute("SELECT COUNT(*) AS n FROM tags").fetchone()["n"])
            error_count = int(conn.execute("SELECT COUNT(*) AS n FROM scan_errors").fetchone()["n"])
        last = self.notifier.last()
        return {
            "media_root": str(self.config.media_root),
            "db_path": str(self.config.db_path),
            "cache_dir": str(self.config.cache_dir),
            "media": media_count,
            "folders": folder_count,
            "tags": tag_count,
            "scan_errors": error_count,
            "scan_in_progress": self.orchestrator.is_in_progress(),
            "sweep_in_progress": self.orchestrator.is_sweep_in_progress(),
            "transcoding": video.transcode_in_progress(),
            "last_message": last.message if last else "",
        }

    # queries

    def timeline(self, params: FilterParams | None = None, caller: str = "") -> dict[str, Any]:
        params = (params or FilterParams(page_size=self.config.page_size)).normalized()

        def build() -> Any:
            with self.db.read() as conn:
                return timeline_q.timeline(conn, params, self.aliases)

        return self._read("/api/timeline", build, caller, params.fingerprint())

    def get(
        self,
        identifier: str | int,
        params: FilterParams | None = None,
        exclude: Iterable[int] = (),
        limit: int = 3,
        caller: str = "",
    ) -> dict[str, Any]:
        media_hash = parse_media_id(identifier)
        params = (params or FilterParams()).normalized()
        excluded = sorted(int(h) for h in exclude)
        include = self.config.thumbs.include_originals

        def build() -> Any:
            with self.db.read() as conn:
                record = media_q.get_media(conn, media_hash)
                return MediaDetailOutput(
                    media=media_q.to_output(record, include),
                    previous=neighbors_q.previous_items(conn, record, params, self.aliases, include),
                    next=neighbors_q.next_items(conn, record, params, limit, excluded, self.aliases, include),
                )

        fingerprint = f"{params.fingerprint()}|{excluded}|{limit}"
        return self._read(f"/api/media/{media_hash}", build, caller, fingerprint)

    def folders(self, order: str = "ASC", caller: str = "") -> list[dict[str, Any]]:
        include = self.config.thumbs.include_originals

        def build() -> Any:
            with self.db.read() as conn:
                return folders_q.folder_tree(conn, order, include_originals=include)

        return self._read("/api/folders", build, caller, order)

    def folder(self, key: str, offset: int = 0, order: str = "DESC", page_size: int = 100, caller: str = "") -> dict[str, Any]:
        include = self.config.thumbs.include_originals

        def build() -> Any:
            with self.db.read() as conn:
                return {
                    "key": key,
                    "total": media_q.folder_total(conn, key),
                    "items": media_q.folder_items(conn, key, offset, order, page_size, include),
                }

        return self._read(f"/api/folder/{key}", build, caller, f"{offset}|{order}|{page_size}")

    def gear(self, caller: str = "") -> dict[str, Any]:
        def build() -> Any:
            with self.db.read() as conn:
                return gear_q.gear(conn, self.aliases)

        return self._read("/api/gear", build, caller)

    def tags(self, order: str = "ASC", caller: str = "") -> list[dict[str, Any]]:
        def build() -> Any:
            with self.db.read() as conn:
                return media_q.tags(conn, order)

        return self._read("/api/tags", build, caller, order)

    def tag(self, key: str, offset: int = 0, order: str = "DESC", page_size: int = 100, caller: str = "") -> dict[str, Any]:
        include = self.config.thumbs.include_originals

        def build() -> Any:
            with self.db.read() as conn:
                return {
                    "key": key,
                    "title": media_q.tag_title(conn, key),
                    "total": media_q.tag_total(conn, key),
                    "items": media_q.tag_items(conn, key, offset, order, page_size, include),
                }

        return self._read(f"/api/tag/{key}", build, caller, f"{offset}|{order}|{page_size}")

    def map_items(self, caller: str = "") -> list[list[float | int]]:
        def build() -> Any:
            with self.db.read() as conn:
                return media_q.map_items(conn)

        return self._read("/api/map", build, caller)

    def memories(self, caller: str = "") -> list[dict[str, Any]]:
        include = self.config.thumbs.include_originals

        def build() -> Any:
            with self.db.read() as conn:
                return media_q.memories(conn, utc_today(), include)

        return self._read("/api/memories", build, caller)

    # derived assets

    def thumbnail(self, identifier: str | int, size: int) -> Thumbnail:
        with self.db.read() as conn:
            record = media_q.get_media(conn, parse_media_id(identifier))
        return self.assets.thumbnail(record, size)

    def transcode(self, identifier: str | int) -> Path:
        with self.db.read() as conn:
            record = media_q.get_media(conn, parse_media_id(identifier))
        return self.assets.hls_index(record)
