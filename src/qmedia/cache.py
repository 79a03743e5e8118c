from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import hashlib
import logging
import threading
from typing import Callable

from cachetools import LRUCache

from qmedia.util.time import utc_today

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CachedResponse:
    body: bytes
    etag: str


def etag_for(body: bytes) -> str:
    return f'"{hashlib.sha1(body).hexdigest()}"'


class ResponseCache:
    """Serialized query results keyed by url, caller, filter fingerprint and UTC day.

    Any index mutation calls flush(); there is no partial invalidation. A body
    built before a flush is discarded rather than stored.
    """

    def __init__(self, max_entries: int = 1024, dev: bool = False, today: Callable[[], date] = utc_today):
        self.dev = dev
        self._today = today
        self._entries: LRUCache[str, CachedResponse] = LRUCache(maxsize=max_entries)
        self._generation = 0
        self._lock = threading.Lock()

    def key(self, url: str, caller: str = "", fingerprint: str = "") -> str:
        return "|".join([url, caller, fingerprint, self._today().strftime("%Y%m%d")])

    def get(self, key: str) -> CachedResponse | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, body: bytes, generation: int | None = None) -> CachedResponse:
        entry = CachedResponse(body=body, etag=etag_for(body))
        with self._lock:
            if generation is None or generation == self._generation:
                self._entries[key] = entry
            else:
                logger.debug("discarding %s, index changed while building", key)
        return entry

    def get_or_build(self, key: str, build: Callable[[], bytes]) -> CachedResponse:
        with self._lock:
            cached = self._entries.get(key)
            generation = self._generation
        if cached is not None:
            return cached
        return self.put(key, build(), generation)

    def etag(self, key: str) -> str | None:
        entry = self.get(key)
        return entry.etag if entry is not None else None

    def is_not_modified(self, key: str, if_none_match: str | None) -> bool:
        if self.dev or not if_none_match:
            return False
        current = self.etag(key)
        if current is None:
            return False
        candidates = {tag.strip() for tag in if_none_match.split(",")}
        return current in candidates or "*" in candidates

    def flush(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._generation += 1
        if dropped:
            logger.debug("response cache flushed (%d entries)", dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
