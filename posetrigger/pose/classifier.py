from __future__ import annotations

import logging
from dataclasses import dataclass
from math import acos, degrees
from typing import Optional, Tuple

import numpy as np

from posetrigger.common.config import ClassifierConfig
from posetrigger.common.schemas import POSE_LANDMARK_COUNT, PoseLabel, PoseSample
from posetrigger.pose import landmarks as lm


logger = logging.getLogger(__name__)


def joint_angle_deg(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> Optional[float]:
    """Angle at B between AB = B - A and BC = C - B, in degrees.

    Returns None for degenerate geometry (zero-length vector or non-finite input).
    """
    ab = b - a
    bc = c - b
    if not (np.all(np.isfinite(ab)) and np.all(np.isfinite(bc))):
        return None
    norm_ab = float(np.linalg.norm(ab))
    norm_bc = float(np.linalg.norm(bc))
    if norm_ab <= 1e-12 or norm_bc <= 1e-12:
        return None
    cos_t = float(np.dot(ab, bc)) / (norm_ab * norm_bc)
    # Rounding can push |cos| just past 1
    cos_t = max(-1.0, min(1.0, cos_t))
    return degrees(acos(cos_t))


@dataclass(frozen=True)
class AngleRange:
    lo: float
    hi: float

    def contains(self, angle: Optional[float]) -> bool:
        return angle is not None and self.lo <= angle <= self.hi


class LandmarkClassifier:
    """Stateless golf-address pose rule over shoulder and hip angles."""

    def __init__(self, config: Optional[ClassifierConfig] = None):
        cfg = config or ClassifierConfig()
        self.shoulder_range = AngleRange(cfg.angle_min_deg, cfg.angle_max_deg)
        self.hip_range = AngleRange(cfg.angle_min_deg, cfg.angle_max_deg)

    def pose_angles(self, sample: PoseSample) -> Tuple[Optional[float], Optional[float]]:
        """(shoulder_angle, hip_angle) in degrees; None entries for unusable geometry."""
        if not sample.is_complete:
            return None, None
        pts = sample.xy()
        shoulder = joint_angle_deg(pts[lm.LEFT_SHOULDER], pts[lm.LEFT_ELBOW], pts[lm.RIGHT_SHOULDER])
        hip = joint_angle_deg(pts[lm.LEFT_HIP], pts[lm.LEFT_SHOULDER], pts[lm.RIGHT_HIP])
        return shoulder, hip

    def decide(self, shoulder: Optional[float], hip: Optional[float]) -> PoseLabel:
        if self.shoulder_range.contains(shoulder) and self.hip_range.contains(hip):
            return PoseLabel.TARGET
        return PoseLabel.NONE

    def classify(self, sample: PoseSample) -> PoseLabel:
        if not sample.is_complete:
            logger.debug("Expected %d landmarks, got %d", POSE_LANDMARK_COUNT, len(sample.joints))
            return PoseLabel.NONE
        shoulder, hip = self.pose_angles(sample)
        label = self.decide(shoulder, hip)
        logger.debug("Shoulder angle: %s, hip angle: %s -> %s", shoulder, hip, label.value)
        return label
