from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from posetrigger.common.errors import CaptureError
from posetrigger.common.schemas import Artifact
from posetrigger.common.utils import make_video_writer
from posetrigger.record.base import Capture


logger = logging.getLogger(__name__)


class OpenCVClipCapture(Capture):
    """Writes preview frames into an MP4 while a clip is open.

    begin/end come from the recorder thread, write() from the frame worker; the
    writer handle is guarded by a lock. Finalizing the file happens on a
    background worker so end() returns immediately.
    """

    def __init__(self, width: int, height: int, fps: float):
        self.width = int(width)
        self.height = int(height)
        self.fps = float(fps)
        self._lock = threading.Lock()
        self._writer = None
        self._path: Optional[Path] = None
        self._frames = 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clip-finalize")

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._writer is not None

    def begin(self, destination: Path) -> None:
        with self._lock:
            if self._writer is not None:
                raise CaptureError("A clip is already being recorded")
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise CaptureError(f"Cannot create {destination.parent}: {e}") from e
            writer = make_video_writer(str(destination), self.width, self.height, self.fps)
            if writer is None:
                raise CaptureError(f"Could not open writer for {destination}")
            self._writer = writer
            self._path = destination
            self._frames = 0
        logger.info("Recording to %s (%dx%d @ %.1f fps)", destination, self.width, self.height, self.fps)

    def write(self, frame_bgr: np.ndarray) -> None:
        with self._lock:
            if self._writer is None:
                return
            if frame_bgr.shape[1] != self.width or frame_bgr.shape[0] != self.height:
                frame_bgr = cv2.resize(frame_bgr, (self.width, self.height), interpolation=cv2.INTER_LINEAR)
            self._writer.write(frame_bgr)
            self._frames += 1

    def end(self) -> "Future[Artifact]":
        with self._lock:
            writer, path, frames = self._writer, self._path, self._frames
            self._writer = None
            self._path = None
            self._frames = 0
        if writer is None or path is None:
            fut: "Future[Artifact]" = Future()
            fut.set_exception(CaptureError("No clip is being recorded"))
            return fut
        return self._executor.submit(self._finalize, writer, path, frames)

    def _finalize(self, writer, path: Path, frames: int) -> Artifact:
        writer.release()
        if frames <= 0 or not path.exists() or path.stat().st_size <= 0:
            raise CaptureError(f"Clip {path.name} is empty")
        return Artifact(path=path, frames=frames, duration_s=frames / self.fps)

    def close(self) -> None:
        with self._lock:
            writer = self._writer
            self._writer = None
        if writer is not None:
            writer.release()
        self._executor.shutdown(wait=True)
