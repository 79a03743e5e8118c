from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

SCANNING = "scanning"
COMPLETE = "complete"
CANCELED = "canceled"


@dataclass(slots=True, frozen=True)
class Notice:
    message: str
    phase: str


Subscriber = Callable[[Notice], None]


class Notifier:
    def __init__(self, history: int = 200):
        self._recent: deque[Notice] = deque(maxlen=history)
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(fn)

        def unsubscribe() -> None:
            with self._lock:
                if fn in self._subscribers:
                    self._subscribers.remove(fn)

        return unsubscribe

    def notify(self, message: str, phase: str = SCANNING) -> Notice:
        notice = Notice(message=message, phase=phase)
        logger.info("%s", message)
        with self._lock:
            self._recent.append(notice)
            subscribers = list(self._subscribers)
        for fn in subscribers:
            try:
                fn(notice)
            except Exception:
                logger.exception("notification subscriber failed")
        return notice

    def recent(self) -> list[Notice]:
        with self._lock:
            return list(self._recent)

    def last(self) -> Notice | None:
        with self._lock:
            return self._recent[-1] if self._recent else None
