from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from qmedia.paths import config_root, default_cache_dir, default_db_path, default_media_root


@dataclass(slots=True)
class ThumbsConfig:
    quality: int = 90
    pregenerate: bool = False
    include_originals: bool = False
    resize_service: str = ""


@dataclass(slots=True)
class VideoConfig:
    transcode_resolution: int = 720
    pregenerate: bool = False


@dataclass(slots=True)
class GeoConfig:
    enabled: bool = True
    location_service: str = ""


@dataclass(slots=True)
class AliasConfig:
    lenses: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ScanConfig:
    write_retries: int = 3
    busy_timeout_ms: int = 5000


@dataclass(slots=True)
class CacheConfig:
    max_entries: int = 1024


@dataclass(slots=True)
class AppConfig:
    media_root: Path = field(default_factory=default_media_root)
    db_path: Path = field(default_factory=default_db_path)
    cache_dir: Path = field(default_factory=default_cache_dir)
    dev: bool = False
    page_size: int = 1000
    thumbs: ThumbsConfig = field(default_factory=ThumbsConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    geo: GeoConfig = field(default_factory=GeoConfig)
    aliases: AliasConfig = field(default_factory=AliasConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    @property
    def video_dir(self) -> Path:
        return self.cache_dir / "video"


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _to_config(data: dict[str, Any]) -> AppConfig:
    thumbs = ThumbsConfig(**(data.get("thumbs") or {}))
    video = VideoConfig(**(data.get("video") or {}))
    geo = GeoConfig(**(data.get("geo") or {}))
    lenses = (data.get("aliases") or {}).get("lenses") or {}
    aliases = AliasConfig(lenses={str(k): str(v) for k, v in lenses.items()})
    scan = ScanConfig(**(data.get("scan") or {}))
    cache = CacheConfig(**(data.get("cache") or {}))
    return AppConfig(
        media_root=Path(data.get("media_root", str(default_media_root()))).expanduser(),
        db_path=Path(data.get("db_path", str(default_db_path()))).expanduser(),
        cache_dir=Path(data.get("cache_dir", str(default_cache_dir()))).expanduser(),
        dev=bool(data.get("dev", False)),
        page_size=int(data.get("page_size", 1000)),
        thumbs=thumbs,
        video=video,
        geo=geo,
        aliases=aliases,
        scan=scan,
        cache=cache,
    )


def default_config_path() -> Path:
    return config_root() / "config.yaml"


def load_config(config_path: Path | None = None, overrides: dict[str, Any] | None = None) -> AppConfig:
    path = config_path or default_config_path()
    base: dict[str, Any] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text())
        if isinstance(loaded, dict):
            base = loaded
    if overrides:
        base = _merge(base, overrides)
    cfg = _to_config(base)
    cfg.db_path.parent.mkdir(parents=True, exist_ok=True)
    cfg.cache_dir.mkdir(parents=True, exist_ok=True)
    return cfg


def write_default_config(path: Path | None = None) -> Path:
    target = path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    if target.exists():
        return target
    target.write_text(
        yaml.safe_dump(
            {
                "media_root": str(default_media_root()),
                "db_path": str(default_db_path()),
                "cache_dir": str(default_cache_dir()),
                "dev": False,
                "page_size": 1000,
                "thumbs": {
                    "quality": 90,
                    "pregenerate": False,
                    "include_originals": False,
                    "resize_service": "",
                },
                "video": {"transcode_resolution": 720, "pregenerate": False},
                "geo": {"enabled": True, "location_service": ""},
                "aliases": {"lenses": {}},
                "scan": {"write_retries": 3, "busy_timeout_ms": 5000},
                "cache": {"max_entries": 1024},
            },
            sort_keys=False,
        )
    )
    return target
