from __future__ import annotations

import logging
import queue
import threading
from typing import Optional, Protocol, Tuple

import numpy as np


logger = logging.getLogger(__name__)

Frame = Tuple[np.ndarray, float]


class FrameReader(Protocol):
    def read(self) -> Tuple[bool, np.ndarray, float]: ...


class LatestFrameSlot:
    """Depth-1 lossy handoff between the reader and the processing worker.

    offer() never blocks: a frame that arrives while the slot is still occupied is
    dropped and counted.
    """

    def __init__(self):
        self._q: "queue.Queue[Optional[Frame]]" = queue.Queue(maxsize=1)
        self.offered = 0
        self.dropped = 0
        self.closed = False

    def offer(self, frame: np.ndarray, ts: float) -> bool:
        self.offered += 1
        try:
            self._q.put_nowait((frame, ts))
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def take(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """Next frame, or None on timeout or once the slot is closed and empty."""
        try:
            if self.closed:
                return self._q.get_nowait()
            return self._q.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        self.closed = True
        # Wakes a blocked take(); a pending frame stays in the slot and is delivered first
        try:
            self._q.put_nowait(None)
        except queue.Full:
            pass


class FramePump:
    """Reads a source on a background thread and feeds a LatestFrameSlot."""

    def __init__(self, source: FrameReader, slot: LatestFrameSlot):
        self.source = source
        self.slot = slot
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.finished = threading.Event()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self.finished.clear()
        self._thread = threading.Thread(target=self._run, name="FramePump", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                ok, frame, ts = self.source.read()
                if not ok:
                    logger.info("Frame source exhausted")
                    break
                self.slot.offer(frame, ts)
        finally:
            self.slot.close()
            self.finished.set()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
