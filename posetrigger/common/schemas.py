from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

import numpy as np
from pydantic import BaseModel, Field


POSE_LANDMARK_COUNT = 33


class PoseLabel(str, Enum):
    """Per-frame classification output. NONE is the distinguished "no pose" value."""

    TARGET = "Golf Pose Detected"
    NONE = "No Pose Detected"


class Joint(BaseModel):
    """Single body landmark normalized to the frame (x, y in [0, 1], z relative depth).

    Values slightly outside [0, 1] are kept as produced by the model, since a joint
    just off-screen is still a usable position estimate.
    """

    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class PoseSample(BaseModel):
    """One detected body in one frame. Indices follow the 33-point BlazePose topology."""

    joints: List[Joint]
    body_index: int = Field(default=0, ge=0, description="Order of the body in the inference output")

    @property
    def is_complete(self) -> bool:
        return len(self.joints) == POSE_LANDMARK_COUNT

    def xy(self) -> np.ndarray:
        """(N, 2) float array of normalized x/y positions."""
        if not self.joints:
            return np.zeros((0, 2), dtype=np.float64)
        return np.array([[j.x, j.y] for j in self.joints], dtype=np.float64)


class DetectionEvent(BaseModel):
    """Debounced transition of the target pose, stamped with the triggering frame time."""

    kind: Literal["confirmed", "lost"]
    label: PoseLabel
    ts: float


class SessionStatus(str, Enum):
    ARMED = "Armed"
    RECORDING = "Recording"
    STOPPING = "Stopping"
    PERSISTING = "Persisting"
    SAVED = "Saved"
    FAILED = "Failed"


@dataclass(frozen=True)
class Artifact:
    """A finished clip on local disk, ready to be persisted."""

    path: Path
    frames: int
    duration_s: float


@dataclass
class RecordingSession:
    session_id: str
    started_at: float
    stop_at: float
    destination: Path
    status: SessionStatus = SessionStatus.RECORDING
    trigger_ts: Optional[float] = None
    ended_at: Optional[float] = None
    artifact: Optional[Artifact] = None
    saved_to: Optional[Path] = None
    error: Optional[str] = None
    transitions: List[SessionStatus] = field(default_factory=list)
