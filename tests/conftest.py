from __future__ import annotations

from concurrent.futures import Future
from math import cos, radians, sin
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import numpy as np
import pytest

from posetrigger.common.errors import CaptureError, InferenceError, PersistError
from posetrigger.common.schemas import Artifact, Joint, PoseSample, RecordingSession
from posetrigger.pose import landmarks as lm
from posetrigger.pose.base import PoseProvider
from posetrigger.record.base import Capture, Scheduler, Storage, TimerHandle


def _polar(origin: Tuple[float, float], deg: float, length: float = 0.1) -> Tuple[float, float]:
    return origin[0] + length * cos(radians(deg)), origin[1] + length * sin(radians(deg))


def make_sample(shoulder_deg: float, hip_deg: float, n_joints: int = 33) -> PoseSample:
    """Build a sample whose shoulder and hip angles are exactly the requested values."""
    pts = [(0.5, 0.5)] * max(n_joints, 33)
    shoulder_l = (0.5, 0.4)
    # shoulder angle at the left elbow: AB points along +x, BC turns by shoulder_deg
    elbow_l = _polar(shoulder_l, 0.0)
    shoulder_r = _polar(elbow_l, shoulder_deg)
    # hip angle at the left shoulder: AB points along -y (hip below shoulder)
    hip_l = (shoulder_l[0], shoulder_l[1] + 0.1)
    hip_r = _polar(shoulder_l, -90.0 + hip_deg)
    pts[lm.LEFT_SHOULDER] = shoulder_l
    pts[lm.LEFT_ELBOW] = elbow_l
    pts[lm.RIGHT_SHOULDER] = shoulder_r
    pts[lm.LEFT_HIP] = hip_l
    pts[lm.RIGHT_HIP] = hip_r
    return PoseSample(joints=[Joint(x=x, y=y) for x, y in pts[:n_joints]])


@pytest.fixture
def target_sample() -> PoseSample:
    return make_sample(165.0, 170.0)


@pytest.fixture
def off_sample() -> PoseSample:
    return make_sample(90.0, 90.0)


class FakeClock:
    def __init__(self, t: float = 100.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


class _ManualHandle(TimerHandle):
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: List[Tuple[float, Callable[[], None], _ManualHandle]] = []

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle()
        self.timers.append((self.clock.t + delay_s, callback, handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self.timers if not h.cancelled)

    def advance(self, seconds: float) -> None:
        self.clock.t += seconds
        due = [t for t in self.timers if t[0] <= self.clock.t]
        self.timers = [t for t in self.timers if t[0] > self.clock.t]
        for _, cb, handle in due:
            if not handle.cancelled:
                cb()


class FakeCapture(Capture):
    def __init__(self, fail_begin: bool = False, auto_finish: bool = True):
        self.fail_begin = fail_begin
        self.auto_finish = auto_finish
        self.begun: List[Path] = []
        self.ended = 0
        self.frames_written = 0
        self.pending: List[Future] = []
        self._open: Optional[Path] = None

    @property
    def is_recording(self) -> bool:
        return self._open is not None

    def begin(self, destination: Path) -> None:
        if self.fail_begin:
            raise CaptureError("camera busy")
        self.begun.append(destination)
        self._open = destination

    def write(self, frame_bgr: np.ndarray) -> None:
        if self._open is not None:
            self.frames_written += 1

    def end(self) -> Future:
        self.ended += 1
        path, self._open = self._open, None
        fut: Future = Future()
        if self.auto_finish:
            fut.set_result(Artifact(path=path, frames=75, duration_s=5.0))
        else:
            self.pending.append(fut)
        return fut


class FakeStorage(Storage):
    def __init__(self):
        self.pending: List[Tuple[Future, Artifact]] = []
        self.persisted: List[Artifact] = []

    def persist(self, artifact: Artifact, session: RecordingSession) -> Future:
        fut: Future = Future()
        self.pending.append((fut, artifact))
        return fut

    def succeed(self) -> None:
        fut, artifact = self.pending.pop(0)
        self.persisted.append(artifact)
        fut.set_result(Path("library") / artifact.path.name)

    def fail(self, message: str = "disk full") -> None:
        fut, _ = self.pending.pop(0)
        fut.set_exception(PersistError(message))


class ScriptedProvider(PoseProvider):
    """Returns queued results in order; an exception instance in the queue is raised."""

    def __init__(self, script=None, default=None):
        self.script = list(script or [])
        self.default = default if default is not None else []
        self.calls = 0

    def name(self) -> str:
        return "scripted"

    def infer(self, frame_bgr, ts):
        self.calls += 1
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, Exception):
            raise item
        return list(item)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def frame() -> np.ndarray:
    return np.zeros((48, 64, 3), dtype=np.uint8)


@pytest.fixture
def inference_error() -> InferenceError:
    return InferenceError("model crashed")
