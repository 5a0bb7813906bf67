from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from posetrigger.common.config import SourceConfig
from posetrigger.common.errors import SourceError
from posetrigger.common.utils import now_s


logger = logging.getLogger(__name__)

_NO_FRAME = np.zeros((1, 1, 3), dtype=np.uint8)


class VideoSource:
    """Webcam or video file feeding the frame pump.

    read() returns (ok, frame_bgr, ts). Camera frames are stamped with the monotonic
    clock and throttled to the configured fps. File frames are stamped with their
    position in the media (index / native fps), so the pose tracker and the debouncer
    see the recording's own timeline even when playback is not paced to real time.
    """

    def __init__(
        self,
        config: SourceConfig,
        clock: Callable[[], float] = now_s,
        sleep: Callable[[float], None] = time.sleep,
        opener: Callable[..., "cv2.VideoCapture"] = cv2.VideoCapture,
    ):
        if config.kind == "file" and not config.path:
            raise SourceError("File source requires a video path (--path or DEFAULT_VIDEO_PATH)")
        self.config = config
        self.size = (config.width, config.height)
        self.clock = clock
        self._sleep = sleep

        target = config.path if self.is_file else config.camera_index
        self.cap = opener(target)
        if not self.cap.isOpened():
            raise SourceError(f"Failed to open {config.kind} source: {target}")

        self.period_s = self._frame_period()
        self.frame_idx = 0
        self._t0: Optional[float] = None
        self._last_emit: Optional[float] = None
        self._last_ts = 0.0
        logger.info("Opened %s source %s at %.2f fps", config.kind, target, self.fps)

    @property
    def is_file(self) -> bool:
        return self.config.kind == "file"

    @property
    def fps(self) -> float:
        return 1.0 / self.period_s

    def _frame_period(self) -> float:
        if self.is_file:
            native = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
            if native > 0:
                return 1.0 / native
            logger.warning("File reports no frame rate; assuming %d fps", self.config.fps)
        return 1.0 / float(self.config.fps)

    def _due(self, now: float) -> Optional[float]:
        if self.is_file:
            if not self.config.realtime:
                return None
            if self._t0 is None:
                self._t0 = now
            return self._t0 + self.frame_idx * self.period_s
        if self._last_emit is None:
            return None
        return self._last_emit + self.period_s

    def _resize(self, frame: np.ndarray) -> np.ndarray:
        if (frame.shape[1], frame.shape[0]) == self.size:
            return frame
        return cv2.resize(frame, self.size, interpolation=cv2.INTER_LINEAR)

    def read(self) -> Tuple[bool, np.ndarray, float]:
        now = self.clock()
        due = self._due(now)
        if due is not None and due > now:
            self._sleep(due - now)

        ok, frame = self.cap.read()
        if not ok or frame is None:
            return False, _NO_FRAME, self._last_ts

        frame = self._resize(frame)
        ts = self.frame_idx * self.period_s if self.is_file else self.clock()
        self._last_emit = self.clock()
        self._last_ts = ts
        self.frame_idx += 1
        return True, frame, ts

    def release(self) -> None:
        self.cap.release()
