from __future__ import annotations

import logging
from pathlib import Path
import shutil
import subprocess
import threading

from qmedia.errors import GenerationError

logger = logging.getLogger(__name__)

FRAME_TIMEOUT = 60
HLS_INDEX = "index.m3u8"

# One transcode at a time for the whole process.
_TRANSCODE_LOCK = threading.Lock()


def ffmpeg_path() -> str:
    path = shutil.which("ffmpeg")
    if not path:
        raise GenerationError("ffmpeg executable not found on PATH")
    return path


def extract_frame(video_path: Path, ffmpeg: str | None = None) -> bytes:
    """Return the second decoded frame of a video as JPEG bytes."""
    args = [
        ffmpeg or ffmpeg_path(),
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        str(video_path),
        "-vf",
        r"select=gte(n\,1)",
        "-frames:v",
        "1",
        "-f",
        "image2",
        "-vcodec",
        "mjpeg",
        "pipe:1",
    ]
    try:
        completed = subprocess.run(args, capture_output=True, check=False, timeout=FRAME_TIMEOUT)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise GenerationError(f"frame extraction failed for {video_path}: {exc}") from exc
    if completed.returncode != 0 or not completed.stdout:
        stderr = completed.stderr.decode("utf-8", "replace").strip()
        raise GenerationError(f"frame extraction failed for {video_path}: {stderr or 'no output'}")
    return completed.stdout


def hls_args(ffmpeg: str, source: Path, index_file: Path, resolution: int) -> list[str]:
    return [
        ffmpeg,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-i",
        str(source),
        "-c:v",
        "libx264",
        "-crf",
        "23",
        "-preset",
        "veryfast",
        "-maxrate",
        "1500k",
        "-bufsize",
        "3000k",
        "-vf",
        f"scale=-2:{resolution}",
        "-c:a",
        "aac",
        "-b:a",
        "96k",
        "-movflags",
        "+faststart",
        "-start_number",
        "0",
        "-hls_time",
        "1",
        "-hls_list_size",
        "0",
        "-f",
        "hls",
        str(index_file),
    ]


def transcode_hls(source: Path, out_dir: Path, resolution: int, ffmpeg: str | None = None) -> Path:
    """Transcode a video into HLS segments under out_dir, serialized process-wide."""
    index_file = out_dir / HLS_INDEX
    with _TRANSCODE_LOCK:
        if index_file.exists():
            return index_file
        out_dir.mkdir(parents=True, exist_ok=True)
        args = hls_args(ffmpeg or ffmpeg_path(), source, index_file, resolution)
        logger.info("transcoding %s at %dp", source, resolution)
        try:
            completed = subprocess.run(args, capture_output=True, check=False)
        except OSError as exc:
            raise GenerationError(f"transcode failed for {source}: {exc}") from exc
        if completed.returncode != 0:
            shutil.rmtree(out_dir, ignore_errors=True)
            stderr = completed.stderr.decode("utf-8", "replace").strip()
            raise GenerationError(f"transcode failed for {source}: {stderr}")
    return index_file



def transcode_in_progress() -> bool:
    return _TRANSCODE_LOCK.locked()
