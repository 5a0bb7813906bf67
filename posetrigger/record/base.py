from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future
from pathlib import Path
from typing import Callable

import numpy as np

from posetrigger.common.schemas import Artifact, RecordingSession


class Capture(ABC):
    """Clip capture collaborator driven by the recording state machine."""

    @abstractmethod
    def begin(self, destination: Path) -> None:
        """Start writing a new clip. Raises CaptureError if the output cannot be opened."""

    @abstractmethod
    def write(self, frame_bgr: np.ndarray) -> None:
        """Append a frame if a clip is open; no-op otherwise."""

    @abstractmethod
    def end(self) -> "Future[Artifact]":
        """Close the clip. The future resolves with the artifact or a CaptureError."""

    @property
    @abstractmethod
    def is_recording(self) -> bool: ...


class Storage(ABC):
    """Durable destination for finished clips."""

    @abstractmethod
    def persist(self, artifact: Artifact, session: RecordingSession) -> "Future[Path]":
        """The future resolves with the stored location or a PersistError."""


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None: ...


class Scheduler(ABC):
    """One-shot timers. Callbacks run on a scheduler-owned thread."""

    @abstractmethod
    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...
