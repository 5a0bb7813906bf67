from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional

import cv2

from .schemas import DetectionEvent


def now_s() -> float:
    """Monotonic seconds for timestamps."""
    return time.monotonic()


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def format_event_json(event: DetectionEvent, extra: Optional[Dict[str, Any]] = None) -> str:
    """Compact one-line JSON suitable for stdout."""
    def round_if_float(v):
        if isinstance(v, float):
            return round(v, 3)
        if isinstance(v, list):
            return [round_if_float(x) for x in v]
        return v

    data = event.model_dump(mode="json")
    if extra:
        data.update(extra)
    data = {k: round_if_float(v) for k, v in data.items()}
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def make_video_writer(path: str, width: int, height: int, fps: float):
    """Create a cross-platform MP4 writer. Returns cv2.VideoWriter or None on failure."""
    # Prefer mp4v for Windows/macOS. If unavailable, try avc1.
    for fourcc_str in ("mp4v", "avc1", "H264", "XVID"):
        fourcc = cv2.VideoWriter_fourcc(*fourcc_str)
        writer = cv2.VideoWriter(path, fourcc, float(fps), (int(width), int(height)))
        if writer.isOpened():
            return writer
        writer.release()
    return None
