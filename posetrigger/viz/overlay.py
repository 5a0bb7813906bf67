from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from posetrigger.common.schemas import PoseLabel, PoseSample, SessionStatus
from posetrigger.pose.landmarks import SKELETON_CONNECTIONS


def _put_text(img, text: str, org: Tuple[int, int], color=(255, 255, 255), scale: float = 0.5):
    cv2.putText(img, text, org, cv2.FONT_HERSHEY_SIMPLEX, scale, color, 1, cv2.LINE_AA)


def _draw_skeleton(frame_bgr: np.ndarray, sample: PoseSample, color) -> None:
    h, w = frame_bgr.shape[:2]
    pts = sample.xy()
    n = len(pts)

    def px(i: int) -> Optional[Tuple[int, int]]:
        if i >= n or not np.all(np.isfinite(pts[i])):
            return None
        return int(pts[i][0] * w), int(pts[i][1] * h)

    for a, b in SKELETON_CONNECTIONS:
        pa, pb = px(a), px(b)
        if pa is not None and pb is not None:
            cv2.line(frame_bgr, pa, pb, color, 2, cv2.LINE_AA)
    for a, b in SKELETON_CONNECTIONS:
        for i in (a, b):
            p = px(i)
            if p is not None:
                cv2.circle(frame_bgr, p, 3, (255, 255, 255), -1, cv2.LINE_AA)


def draw_overlays(
    frame_bgr: np.ndarray,
    frame_idx: int,
    fps_est: float,
    status_text: str,
    recorder_status: SessionStatus,
    label: PoseLabel = PoseLabel.NONE,
    sample: Optional[PoseSample] = None,
    angles: Tuple[Optional[float], Optional[float]] = (None, None),
) -> None:
    h, w = frame_bgr.shape[:2]

    # HUD
    _put_text(
        frame_bgr,
        f"{w}x{h} | frame {frame_idx} | {fps_est:.1f} FPS | {recorder_status.value}",
        (10, 20),
        (180, 255, 180),
    )

    shoulder, hip = angles
    if shoulder is not None or hip is not None:
        fmt = lambda v: "-" if v is None else f"{v:.1f}"
        _put_text(frame_bgr, f"shoulder:{fmt(shoulder)}  hip:{fmt(hip)}", (10, 40), (200, 220, 255))

    if sample is not None:
        color = (0, 220, 0) if label is PoseLabel.TARGET else (0, 200, 255)
        _draw_skeleton(frame_bgr, sample, color)

    # Recording dot
    if recorder_status is SessionStatus.RECORDING:
        cv2.circle(frame_bgr, (w - 24, 24), 10, (0, 0, 255), -1, cv2.LINE_AA)

    # Status chip along the bottom edge
    if status_text:
        (tw, th), _ = cv2.getTextSize(status_text, cv2.FONT_HERSHEY_SIMPLEX, 0.6, 1)
        pad = 6
        x = max(0, (w - tw) // 2)
        y = h - 20
        cv2.rectangle(frame_bgr, (x - pad, y - th - pad), (x + tw + pad, y + pad), (40, 40, 40), -1)
        _put_text(frame_bgr, status_text, (x, y), (255, 255, 255), scale=0.6)
