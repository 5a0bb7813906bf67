"""Composition root: frame -> pose samples -> label -> detection event -> recorder."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from posetrigger.common.schemas import DetectionEvent, PoseLabel, PoseSample, RecordingSession, SessionStatus
from posetrigger.common.utils import now_s
from posetrigger.ingest.pump import LatestFrameSlot
from posetrigger.pose.base import PoseProvider
from posetrigger.pose.classifier import LandmarkClassifier
from posetrigger.reasoner.debounce import DetectionDebouncer
from posetrigger.reasoner.fsm import RecordingStateMachine
from posetrigger.record.base import Capture
from posetrigger.viz.status import StatusBoard


logger = logging.getLogger(__name__)


@dataclass
class FrameResult:
    """What the last processed frame produced, for the preview overlay."""

    frame: np.ndarray
    ts: float
    label: PoseLabel
    samples: List[PoseSample] = field(default_factory=list)
    angles: Tuple[Optional[float], Optional[float]] = (None, None)


class PoseTriggerController:
    def __init__(
        self,
        provider: PoseProvider,
        classifier: LandmarkClassifier,
        debouncer: DetectionDebouncer,
        machine: RecordingStateMachine,
        capture: Optional[Capture] = None,
        status: Optional[StatusBoard] = None,
        on_event: Optional[Callable[[DetectionEvent], None]] = None,
        clock: Callable[[], float] = now_s,
        notice_s: float = 2.0,
    ):
        self.provider = provider
        self.classifier = classifier
        self.debouncer = debouncer
        self.machine = machine
        self.capture = capture
        self.status = status or StatusBoard(PoseLabel.NONE.value)
        self.on_event = on_event
        self.clock = clock
        self.notice_s = float(notice_s)

        self.last_label = PoseLabel.NONE
        self.frames_processed = 0
        self.inference_failures = 0
        self._notice_until: Optional[float] = None
        self._latest: Optional[FrameResult] = None
        self._latest_lock = threading.Lock()
        self._recorder_stop = threading.Event()
        self._recorder_thread: Optional[threading.Thread] = None

        machine.subscribe(self._on_transition)

    # -- per frame ----------------------------------------------------------

    def _infer(self, frame: np.ndarray, ts: float) -> List[PoseSample]:
        try:
            return self.provider.infer(frame, ts)
        except Exception as e:
            self.inference_failures += 1
            logger.warning("Inference failed on frame at %.3f: %s", ts, e)
            return []

    def process_frame(self, frame: np.ndarray, ts: float) -> Optional[DetectionEvent]:
        samples = self._infer(frame, ts)
        label = PoseLabel.NONE
        angles: Tuple[Optional[float], Optional[float]] = (None, None)
        for sample in samples:
            sample_label = self.classifier.classify(sample)
            if sample_label is not PoseLabel.NONE:
                label = sample_label
                angles = self.classifier.pose_angles(sample)
                break
        else:
            if samples:
                angles = self.classifier.pose_angles(samples[0])

        if self.capture is not None:
            self.capture.write(frame)

        event = self.debouncer.observe(label, ts)
        if label is not self.last_label:
            self.last_label = label
            self._notice_until = None
            self.status.publish(label.value)
        elif self._notice_until is not None and self.clock() >= self._notice_until:
            # notices are transient; fall back to the pose label
            self._notice_until = None
            self.status.publish(label.value)
        if event is not None:
            logger.info("Pose %s: %s at %.3f", event.kind, event.label.value, event.ts)
            self.machine.submit(event)
            if self.on_event is not None:
                self.on_event(event)

        self.frames_processed += 1
        with self._latest_lock:
            self._latest = FrameResult(frame=frame, ts=ts, label=label, samples=samples, angles=angles)
        return event

    def latest(self) -> Optional[FrameResult]:
        with self._latest_lock:
            return self._latest

    # -- recorder plumbing --------------------------------------------------

    def _on_transition(
        self, status: SessionStatus, session: Optional[RecordingSession], notice: Optional[str]
    ) -> None:
        if notice:
            self._notice_until = self.clock() + self.notice_s
            self.status.publish(notice)

    def request_stop(self) -> None:
        self.machine.request_stop("manual")

    def start_recorder(self) -> None:
        if self._recorder_thread and self._recorder_thread.is_alive():
            return
        self._recorder_stop.clear()
        self._recorder_thread = threading.Thread(
            target=self.machine.run, args=(self._recorder_stop,), name="Recorder", daemon=True
        )
        self._recorder_thread.start()

    def stop_recorder(self, timeout: float = 2.0) -> None:
        self._recorder_stop.set()
        if self._recorder_thread is not None:
            self._recorder_thread.join(timeout=timeout)
        self.machine.close()

    def run(self, slot: LatestFrameSlot, stop: threading.Event, poll_s: float = 0.1) -> None:
        """Processing worker: consumes frames until the slot closes or stop is set."""
        while not stop.is_set():
            item = slot.take(timeout=poll_s)
            if item is None:
                if slot.closed:
                    break
                continue
            frame, ts = item
            self.process_frame(frame, ts)
        logger.info(
            "Processed %d frames (%d dropped, %d inference failures)",
            self.frames_processed,
            slot.dropped,
            self.inference_failures,
        )
