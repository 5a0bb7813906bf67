from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from posetrigger.common.config import InferenceConfig
from posetrigger.common.errors import InferenceError
from posetrigger.common.schemas import Joint, PoseSample
from posetrigger.common.utils import clamp
from posetrigger.pose.base import PoseProvider


logger = logging.getLogger(__name__)


class MediaPipePoseLandmarker(PoseProvider):
    """MediaPipe Tasks PoseLandmarker wrapper returning normalized 33-point samples."""

    def __init__(self, config: Optional[InferenceConfig] = None):
        self.config = config or InferenceConfig()
        model_path = Path(self.config.model_path)
        if not model_path.exists():
            raise InferenceError(f"Pose model not found: {model_path}")
        try:
            import mediapipe as mp  # type: ignore
        except ImportError as e:
            raise InferenceError("MediaPipe is not installed. Install it with: pip install mediapipe") from e

        self._mp = mp
        vision = mp.tasks.vision
        self._video_mode = self.config.running_mode == "VIDEO"
        options = vision.PoseLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=str(model_path)),
            running_mode=vision.RunningMode.VIDEO if self._video_mode else vision.RunningMode.IMAGE,
            num_poses=self.config.num_poses,
            min_pose_detection_confidence=self.config.min_pose_detection_confidence,
            min_pose_presence_confidence=self.config.min_pose_presence_confidence,
            min_tracking_confidence=self.config.min_tracking_confidence,
        )
        self._landmarker = vision.PoseLandmarker.create_from_options(options)
        self._last_ts_ms = -1
        logger.info(
            "PoseLandmarker initialized (model=%s, mode=%s, num_poses=%d)",
            model_path.name,
            self.config.running_mode,
            self.config.num_poses,
        )

    def name(self) -> str:
        return "mediapipe_pose_landmarker"

    def _timestamp_ms(self, ts: float) -> int:
        # VIDEO mode rejects timestamps that do not strictly increase
        ts_ms = max(int(ts * 1000.0), self._last_ts_ms + 1)
        self._last_ts_ms = ts_ms
        return ts_ms

    def infer(self, frame_bgr: np.ndarray, ts: float) -> List[PoseSample]:
        if frame_bgr is None or frame_bgr.ndim != 3 or frame_bgr.size == 0:
            raise InferenceError("Invalid frame; expected non-empty BGR image")
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
        try:
            if self._video_mode:
                result = self._landmarker.detect_for_video(image, self._timestamp_ms(ts))
            else:
                result = self._landmarker.detect(image)
        except (RuntimeError, ValueError) as e:
            raise InferenceError(f"Pose detection failed: {e}") from e

        samples: List[PoseSample] = []
        for i, body in enumerate(getattr(result, "pose_landmarks", None) or []):
            joints = [
                Joint(
                    x=float(p.x),
                    y=float(p.y),
                    z=float(p.z or 0.0),
                    visibility=_visibility(p),
                )
                for p in body
            ]
            samples.append(PoseSample(joints=joints, body_index=i))
        return samples

    def close(self) -> None:
        self._landmarker.close()


def _visibility(p) -> Optional[float]:
    v = getattr(p, "visibility", None)
    return None if v is None else clamp(float(v), 0.0, 1.0)
