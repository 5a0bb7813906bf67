"""Recording lifecycle driven by debounced detection events.

Every input (detection events, the stop timer, manual stop requests, capture and
storage results) is posted to a single FIFO inbox and applied one message at a time,
so transitions never interleave. Saved and Failed are momentary: the machine always
lands back in Armed.
"""
from __future__ import annotations

import logging
import queue
import threading
import uuid
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, List, Optional, Union

from posetrigger.common.schemas import (
    Artifact,
    DetectionEvent,
    PoseLabel,
    RecordingSession,
    SessionStatus,
)
from posetrigger.common.utils import now_s
from posetrigger.record.base import Capture, Scheduler, Storage, TimerHandle
from posetrigger.record.scheduler import ThreadTimerScheduler


logger = logging.getLogger(__name__)

NOTICE_STARTED = "Recording Began"
NOTICE_SAVED = "Video Saved"


@dataclass(frozen=True)
class Detected:
    event: DetectionEvent


@dataclass(frozen=True)
class StopRequested:
    reason: str = "manual"


@dataclass(frozen=True)
class StopTimerFired:
    session_id: str


@dataclass(frozen=True)
class CaptureFinished:
    session_id: str
    artifact: Artifact


@dataclass(frozen=True)
class CaptureFailed:
    session_id: str
    error: str


@dataclass(frozen=True)
class PersistSucceeded:
    session_id: str
    location: Path


@dataclass(frozen=True)
class PersistFailed:
    session_id: str
    error: str


Message = Union[
    Detected, StopRequested, StopTimerFired, CaptureFinished, CaptureFailed, PersistSucceeded, PersistFailed
]

# (status, session, notice) -> None
TransitionListener = Callable[[SessionStatus, Optional[RecordingSession], Optional[str]], None]


def _future_error(fut: Future) -> Optional[str]:
    if fut.cancelled():
        return "cancelled"
    err = fut.exception()
    return None if err is None else str(err) or type(err).__name__


class RecordingStateMachine:
    def __init__(
        self,
        capture: Capture,
        storage: Storage,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = now_s,
        clip_seconds: float = 5.0,
        tmp_dir: Union[str, Path] = "clips_tmp",
        history_size: int = 100,
    ):
        self.capture = capture
        self.storage = storage
        self.scheduler = scheduler or ThreadTimerScheduler()
        self.clock = clock
        self.clip_seconds = float(clip_seconds)
        self.tmp_dir = Path(tmp_dir)

        self.status = SessionStatus.ARMED
        self.session: Optional[RecordingSession] = None
        self.history: Deque[RecordingSession] = deque(maxlen=history_size)
        self.sessions_created = 0

        self._inbox: "queue.Queue[Message]" = queue.Queue()
        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._listeners: List[TransitionListener] = []

    # -- inputs -------------------------------------------------------------

    def subscribe(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def post(self, msg: Message) -> None:
        self._inbox.put(msg)

    def submit(self, event: DetectionEvent) -> None:
        self.post(Detected(event))

    def request_stop(self, reason: str = "manual") -> None:
        self.post(StopRequested(reason))

    # -- consumption --------------------------------------------------------

    def drain(self) -> int:
        """Apply every pending message on the calling thread. Returns how many were handled."""
        handled = 0
        while True:
            try:
                msg = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            self._dispatch(msg)
            handled += 1

    def run(self, stop: threading.Event, poll_s: float = 0.1) -> None:
        """Worker loop; the only consumer of the inbox while it runs."""
        while not stop.is_set():
            try:
                msg = self._inbox.get(timeout=poll_s)
            except queue.Empty:
                continue
            self._dispatch(msg)
        self.drain()

    def _dispatch(self, msg: Message) -> None:
        # one bad message must not stop the consumer
        try:
            self.handle(msg)
        except Exception:
            logger.exception("Recorder failed to handle %r", msg)

    def handle(self, msg: Message) -> None:
        with self._lock:
            if isinstance(msg, Detected):
                self._on_detected(msg.event)
            elif isinstance(msg, StopRequested):
                self._on_stop_requested(msg.reason)
            elif isinstance(msg, StopTimerFired):
                if self._is_current(msg.session_id, SessionStatus.RECORDING):
                    self._timer = None
                    self._stop("timer")
            elif isinstance(msg, CaptureFinished):
                if self._is_current(msg.session_id, SessionStatus.STOPPING):
                    self._persist(msg.artifact)
            elif isinstance(msg, CaptureFailed):
                if self._is_current(msg.session_id, SessionStatus.STOPPING):
                    self._fail(f"Error recording video: {msg.error}")
            elif isinstance(msg, PersistSucceeded):
                if self._is_current(msg.session_id, SessionStatus.PERSISTING):
                    self._saved(msg.location)
            elif isinstance(msg, PersistFailed):
                if self._is_current(msg.session_id, SessionStatus.PERSISTING):
                    self._fail(f"Error saving video: {msg.error}")
            else:
                raise TypeError(f"Unknown message: {msg!r}")

    def close(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    # -- transitions --------------------------------------------------------

    def _is_current(self, session_id: str, expected: SessionStatus) -> bool:
        ok = self.session is not None and self.session.session_id == session_id and self.status is expected
        if not ok:
            logger.debug("Dropping stale message for session %s (status=%s)", session_id, self.status.value)
        return ok

    def _set_status(self, status: SessionStatus, notice: Optional[str] = None) -> None:
        self.status = status
        if self.session is not None and status is not SessionStatus.ARMED:
            self.session.status = status
            self.session.transitions.append(status)
        sid = self.session.session_id if self.session else "-"
        logger.info("Recorder -> %s (session %s)%s", status.value, sid, f": {notice}" if notice else "")
        for listener in list(self._listeners):
            try:
                listener(status, self.session, notice)
            except Exception:
                logger.exception("Transition listener failed on %s", status.value)

    def _on_detected(self, event: DetectionEvent) -> None:
        if event.kind != "confirmed" or event.label is PoseLabel.NONE:
            logger.debug("Pose %s at %.3f", event.kind, event.ts)
            return
        if self.status is not SessionStatus.ARMED:
            logger.debug("Ignoring %s confirmation while %s", event.label.value, self.status.value)
            return
        self._start(event)

    def _start(self, event: DetectionEvent) -> None:
        session_id = uuid.uuid4().hex
        started = self.clock()
        self.session = RecordingSession(
            session_id=session_id,
            started_at=started,
            stop_at=started + self.clip_seconds,
            destination=self.tmp_dir / f"{session_id}.mp4",
            trigger_ts=event.ts,
        )
        self.sessions_created += 1
        try:
            self.capture.begin(self.session.destination)
        except Exception as e:
            logger.exception("Capture start failed for session %s", session_id)
            self._fail(f"Recording failed: {e}")
            return
        self._timer = self.scheduler.schedule(
            self.clip_seconds, lambda: self.post(StopTimerFired(session_id))
        )
        self._set_status(SessionStatus.RECORDING, NOTICE_STARTED)

    def _on_stop_requested(self, reason: str) -> None:
        if self.status is not SessionStatus.RECORDING:
            logger.debug("Stop request (%s) ignored while %s", reason, self.status.value)
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._stop(reason)

    def _stop(self, reason: str) -> None:
        session = self.session
        assert session is not None
        logger.info("Stopping session %s (%s)", session.session_id, reason)
        self._set_status(SessionStatus.STOPPING)
        try:
            fut = self.capture.end()
        except Exception as e:
            logger.exception("Capture end failed for session %s", session.session_id)
            self._fail(f"Error recording video: {e}")
            return
        fut.add_done_callback(lambda f: self._capture_done(session.session_id, f))

    def _capture_done(self, session_id: str, fut: "Future[Artifact]") -> None:
        err = _future_error(fut)
        if err is not None:
            self.post(CaptureFailed(session_id, err))
        else:
            self.post(CaptureFinished(session_id, fut.result()))

    def _persist(self, artifact: Artifact) -> None:
        session = self.session
        assert session is not None
        session.artifact = artifact
        self._set_status(SessionStatus.PERSISTING)
        try:
            fut = self.storage.persist(artifact, session)
        except Exception as e:
            logger.exception("Persist failed for session %s", session.session_id)
            self._fail(f"Error saving video: {e}")
            return
        fut.add_done_callback(lambda f: self._persist_done(session.session_id, f))

    def _persist_done(self, session_id: str, fut: "Future[Path]") -> None:
        err = _future_error(fut)
        if err is not None:
            self.post(PersistFailed(session_id, err))
        else:
            self.post(PersistSucceeded(session_id, fut.result()))

    def _saved(self, location: Path) -> None:
        assert self.session is not None
        self.session.saved_to = location
        self._set_status(SessionStatus.SAVED, NOTICE_SAVED)
        self._rearm()

    def _fail(self, message: str) -> None:
        assert self.session is not None
        self.session.error = message
        logger.warning("Session %s failed: %s", self.session.session_id, message)
        self._set_status(SessionStatus.FAILED, message)
        self._rearm()

    def _rearm(self) -> None:
        if self.session is not None:
            self.session.ended_at = self.clock()
            self.history.append(self.session)
        self.session = None
        self._timer = None
        self._set_status(SessionStatus.ARMED)
