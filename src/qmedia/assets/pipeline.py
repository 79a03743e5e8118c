from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import io
import logging
from pathlib import Path
import shutil
from typing import Iterator

from PIL import Image

from qmedia.assets import video
from qmedia.assets.images import is_heic, load_oriented, render_thumbnail, resized_to_width, write_bytes
from qmedia.assets.resize_client import ResizeServiceClient
from qmedia.assets.sizes import LADDER, check_size, ladder_for
from qmedia.errors import GenerationError
from qmedia.models import VIDEO, MediaRecord

logger = logging.getLogger(__name__)

FRAME_PREVIEW_WIDTH = 400


@dataclass(slots=True)
class Thumbnail:
    path: Path
    data: bytes
    modified: float
    generated: bool


@contextmanager
def guarded(action: str, record: MediaRecord) -> Iterator[None]:
    """Turn any unexpected failure inside a generation step into GenerationError."""
    try:
        yield
    except GenerationError:
        raise
    except Exception as exc:
        logger.exception("%s failed for %s", action, record.path)
        raise GenerationError(f"{action} failed for {record.path}: {exc}") from exc


class AssetPipeline:
    def __init__(
        self,
        cache_dir: Path,
        media_root: Path,
        quality: int = 90,
        transcode_resolution: int = 720,
        resize_client: ResizeServiceClient | None = None,
    ):
        self.cache_dir = Path(cache_dir)
        self.media_root = Path(media_root)
        self.quality = quality
        self.transcode_resolution = transcode_resolution
        self.resize_client = resize_client

    def source_path(self, record: MediaRecord) -> Path:
        return self.media_root / record.path

    def thumbnail_path(self, media_hash: int, size: int) -> Path:
        return self.cache_dir / str(size) / f"{media_hash}.jpg"

    def video_dir(self, media_hash: int) -> Path:
        return self.cache_dir / "video" / str(media_hash)

    def hls_index_path(self, media_hash: int) -> Path:
        return self.video_dir(media_hash) / video.HLS_INDEX

    def missing_sizes(self, record: MediaRecord) -> list[int]:
        return [s for s in ladder_for(record.width) if not self.thumbnail_path(record.hash, s).exists()]

    def thumbnail(self, record: MediaRecord, size: int) -> Thumbnail:
        """Serve a cached thumbnail, generating it first when absent."""
        check_size(size, record.width)
        path = self.thumbnail_path(record.hash, size)
        generated = False
        if not path.exists():
            self.generate_thumbnail(record, size)
            generated = True
        return Thumbnail(path=path, data=path.read_bytes(), modified=path.stat().st_mtime, generated=generated)

    def generate_thumbnail(self, record: MediaRecord, size: int) -> Path:
        check_size(size, record.width)
        dest = self.thumbnail_path(record.hash, size)
        with guarded("thumbnail", record):
            if self.resize_client is not None:
                self._delegate(record, [size])
            elif record.media_type == VIDEO:
                render_thumbnail(self.video_frame(record), size, dest, self.quality)
            else:
                render_thumbnail(load_oriented(self.source_path(record)), size, dest, self.quality)
        return dest

    def generate_ladder(self, record: MediaRecord, force: bool = False) -> int:
        """Produce every ladder size for a record; returns how many files were written."""
        sizes = ladder_for(record.width) if force else self.missing_sizes(record)
        if not sizes:
            return 0
        with guarded("thumbnail ladder", record):
            if self.resize_client is not None:
                self._delegate(record, sizes)
                return len(sizes)
            if record.media_type == VIDEO:
                source = self.video_frame(record)
            else:
                source = load_oriented(self.source_path(record))
            for size in sizes:
                render_thumbnail(source, size, self.thumbnail_path(record.hash, size), self.quality)
        logger.debug("wrote %d thumbnails for %s", len(sizes), record.path)
        return len(sizes)

    def _delegate(self, record: MediaRecord, sizes: list[int]) -> None:
        assert self.resize_client is not None
        if record.media_type == VIDEO:
            data = self._frame_bytes(record)
            name = f"{record.hash}.jpg"
            heic = False
        else:
            source = self.source_path(record)
            data = source.read_bytes()
            name = source.name
            heic = is_heic(source)
        for size in sizes:
            resized = self.resize_client.resize(data, name, size, heic=heic)
            write_bytes(resized, self.thumbnail_path(record.hash, size))

    def _frame_bytes(self, record: MediaRecord) -> bytes:
        return video.extract_frame(self.source_path(record))

    def video_frame(self, record: MediaRecord) -> Image.Image:
        with guarded("frame extraction", record):
            data = self._frame_bytes(record)
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                return img.convert("RGB")

    def frame_preview(self, record: MediaRecord) -> Image.Image:
        """Frame downsized to the preview width, used for the dominant color of videos."""
        frame = self.video_frame(record)
        if frame.width <= FRAME_PREVIEW_WIDTH:
            return frame
        return resized_to_width(frame, FRAME_PREVIEW_WIDTH)

    def transcode(self, record: MediaRecord) -> Path:
        if record.media_type != VIDEO:
            raise GenerationError(f"{record.path} is not a video")
        with guarded("transcode", record):
            return video.transcode_hls(
                self.source_path(record),
                self.video_dir(record.hash),
                self.transcode_resolution,
            )

    def hls_index(self, record: MediaRecord) -> Path:
        index = self.hls_index_path(record.hash)
        if index.exists():
            return index
        return self.transcode(record)

    def remove_thumbnails(self, record: MediaRecord) -> int:
        removed = 0
        for size in sorted(set(LADDER) | set(ladder_for(record.width))):
            path = self.thumbnail_path(record.hash, size)
            if path.exists():
                path.unlink()
                removed += 1
        return removed

    def remove_video(self, media_hash: int) -> None:
        shutil.rmtree(self.video_dir(media_hash), ignore_errors=True)
