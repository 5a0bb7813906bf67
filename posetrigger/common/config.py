"""Typed runtime settings.

Defaults come from the environment (optionally a ``.env`` file), the CLI then lets
flags override individual fields. Validation happens once at start-up.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


def _env_or(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


class SourceConfig(BaseModel):
    kind: Literal["webcam", "file"] = "webcam"
    path: Optional[str] = None
    camera_index: int = Field(default=0, ge=0)
    width: int = Field(default=1280, gt=0)
    height: int = Field(default=720, gt=0)
    fps: int = Field(default=15, gt=0)
    realtime: bool = Field(default=True, description="Pace file playback to the file's own frame rate")


class InferenceConfig(BaseModel):
    """MediaPipe Tasks PoseLandmarker options."""

    model_path: str = "pose_landmarker_full.task"
    running_mode: Literal["VIDEO", "IMAGE"] = "VIDEO"
    num_poses: int = Field(default=1, ge=1)
    min_pose_detection_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_pose_presence_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class ClassifierConfig(BaseModel):
    angle_min_deg: float = Field(default=150.0, ge=0.0, le=180.0)
    angle_max_deg: float = Field(default=180.0, ge=0.0, le=180.0)

    @model_validator(mode="after")
    def _check_order(self) -> "ClassifierConfig":
        if self.angle_min_deg > self.angle_max_deg:
            raise ValueError("angle_min_deg must not exceed angle_max_deg")
        return self


class DebounceConfig(BaseModel):
    cooldown_s: float = Field(default=1.0, ge=0.0)
    lost_after: int = Field(default=3, ge=1, description="Consecutive no-pose frames before 'lost'")
    repeat_while_held: bool = False


class RecordingConfig(BaseModel):
    clip_seconds: float = Field(default=5.0, gt=0.0)
    tmp_dir: str = Field(default_factory=lambda: str(Path(tempfile.gettempdir()) / "posetrigger"))
    library_dir: str = str(Path("data") / "clips")
    fps: Optional[float] = Field(default=None, gt=0.0, description="Defaults to the source fps")


class Settings(BaseModel):
    source: SourceConfig = Field(default_factory=SourceConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    debounce: DebounceConfig = Field(default_factory=DebounceConfig)
    recording: RecordingConfig = Field(default_factory=RecordingConfig)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path=dotenv_path or os.getenv("POSETRIGGER_DOTENV", ".env"), override=False)
        kind = _env_or("DEFAULT_SOURCE", "webcam")
        return cls(
            source=SourceConfig(
                kind=kind,
                path=_env_or("DEFAULT_VIDEO_PATH", "") or None,
                camera_index=int(_env_or("CAMERA_INDEX", "0")),
                width=int(_env_or("TARGET_WIDTH", "1280")),
                height=int(_env_or("TARGET_HEIGHT", "720")),
                fps=int(_env_or("TARGET_FPS", "15")),
            ),
            inference=InferenceConfig(
                model_path=_env_or("POSE_MODEL_PATH", "pose_landmarker_full.task"),
                num_poses=int(_env_or("POSE_NUM_POSES", "1")),
                min_pose_detection_confidence=float(_env_or("POSE_MIN_DETECTION_CONF", "0.5")),
                min_pose_presence_confidence=float(_env_or("POSE_MIN_PRESENCE_CONF", "0.5")),
                min_tracking_confidence=float(_env_or("POSE_MIN_TRACKING_CONF", "0.5")),
            ),
            classifier=ClassifierConfig(
                angle_min_deg=float(_env_or("ANGLE_MIN_DEG", "150")),
                angle_max_deg=float(_env_or("ANGLE_MAX_DEG", "180")),
            ),
            debounce=DebounceConfig(
                cooldown_s=float(_env_or("COOLDOWN_SEC", "1.0")),
                lost_after=int(_env_or("LOST_AFTER_FRAMES", "3")),
            ),
            recording=RecordingConfig(
                clip_seconds=float(_env_or("CLIP_SECONDS", "5.0")),
                tmp_dir=_env_or("CLIP_TMP_DIR", str(Path(tempfile.gettempdir()) / "posetrigger")),
                library_dir=_env_or("LIBRARY_DIR", str(Path("data") / "clips")),
            ),
        )
