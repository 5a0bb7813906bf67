from __future__ import annotations

import threading
from typing import Callable, List


class StatusBoard:
    """Single display string shared with the presentation layer (read-only for readers)."""

    def __init__(self, initial: str = ""):
        self._lock = threading.Lock()
        self._text = initial
        self._subscribers: List[Callable[[str], None]] = []

    @property
    def current(self) -> str:
        with self._lock:
            return self._text

    def subscribe(self, callback: Callable[[str], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, text: str) -> None:
        with self._lock:
            self._text = text
            subscribers = list(self._subscribers)
        for cb in subscribers:
            cb(text)
