from __future__ import annotations

import threading
from typing import Callable

from posetrigger.record.base import Scheduler, TimerHandle


class _ThreadTimerHandle(TimerHandle):
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadTimerScheduler(Scheduler):
    """threading.Timer per request; cancel() before expiry guarantees the callback never runs."""

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, float(delay_s)), callback)
        timer.name = "clip-stop-timer"
        timer.daemon = True
        timer.start()
        return _ThreadTimerHandle(timer)
