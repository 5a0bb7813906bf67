import threading

import pytest

from conftest import FakeCapture, ScriptedProvider, make_sample
from posetrigger.common.config import DebounceConfig
from posetrigger.common.schemas import PoseLabel, SessionStatus
from posetrigger.controller import PoseTriggerController
from posetrigger.ingest.pump import LatestFrameSlot
from posetrigger.pose.classifier import LandmarkClassifier
from posetrigger.reasoner.debounce import DetectionDebouncer
from posetrigger.reasoner.fsm import NOTICE_SAVED, NOTICE_STARTED, RecordingStateMachine

S = SessionStatus


@pytest.fixture
def build(clock, scheduler, storage, tmp_path):
    def _build(provider, capture=None):
        capture = capture or FakeCapture()
        machine = RecordingStateMachine(
            capture=capture, storage=storage, scheduler=scheduler, clock=clock, clip_seconds=5.0, tmp_dir=tmp_path
        )
        ctl = PoseTriggerController(
            provider=provider,
            classifier=LandmarkClassifier(),
            debouncer=DetectionDebouncer(DebounceConfig(cooldown_s=1.0, lost_after=3)),
            machine=machine,
            capture=capture,
            clock=clock,
        )
        published = []
        ctl.status.subscribe(published.append)
        ctl.published = published
        return ctl

    return _build


def test_scenario_a_no_pose_frames_issue_no_capture(build, frame, off_sample):
    ctl = build(ScriptedProvider(default=[off_sample]))
    for i in range(3):
        assert ctl.process_frame(frame, i * 0.1) is None
    ctl.machine.drain()
    assert ctl.status.current == PoseLabel.NONE.value
    assert ctl.machine.capture.begun == []
    assert ctl.machine.status is S.ARMED


def test_scenario_b_target_frame_starts_recording(build, frame, target_sample):
    ctl = build(ScriptedProvider(default=[target_sample]))
    event = ctl.process_frame(frame, 0.0)
    assert event is not None and event.kind == "confirmed"
    ctl.machine.drain()
    assert ctl.machine.status is S.RECORDING
    assert len(ctl.machine.capture.begun) == 1
    assert ctl.published == [PoseLabel.TARGET.value, NOTICE_STARTED]

    # holding the pose does not open a second session
    for i in range(1, 30):
        ctl.process_frame(frame, i * 0.1)
    ctl.machine.drain()
    assert ctl.machine.sessions_created == 1
    assert len(ctl.machine.capture.begun) == 1


def _record_one(ctl, scheduler, frame):
    ctl.process_frame(frame, 0.0)
    ctl.machine.drain()
    scheduler.advance(5.0)
    ctl.machine.drain()


def test_scenario_c_auto_stop_and_persist(build, frame, target_sample, scheduler, storage):
    ctl = build(ScriptedProvider(default=[target_sample]))
    seen = []
    ctl.machine.subscribe(lambda status, session, notice: seen.append(status))
    _record_one(ctl, scheduler, frame)
    assert seen == [S.RECORDING, S.STOPPING, S.PERSISTING]
    storage.succeed()
    ctl.machine.drain()
    assert seen[-2:] == [S.SAVED, S.ARMED]
    assert len(storage.persisted) == 1
    assert ctl.status.current == NOTICE_SAVED


def test_scenario_d_persist_failure_then_new_session(build, frame, target_sample, off_sample, scheduler, storage):
    provider = ScriptedProvider(default=[target_sample])
    ctl = build(provider)
    _record_one(ctl, scheduler, frame)
    storage.fail("library unavailable")
    ctl.machine.drain()
    assert ctl.machine.status is S.ARMED
    assert storage.persisted == []
    assert ctl.status.current == "Error saving video: library unavailable"

    # subject steps out, then takes the pose again
    provider.script = [[off_sample]] * 3
    for i in range(3):
        ctl.process_frame(frame, 1.0 + i * 0.1)
    event = ctl.process_frame(frame, 2.0)
    assert event is not None and event.kind == "confirmed"
    ctl.machine.drain()
    assert ctl.machine.status is S.RECORDING
    assert ctl.machine.sessions_created == 2


def test_zero_samples_count_as_no_pose(build, frame, target_sample):
    provider = ScriptedProvider(script=[[target_sample], [], [], []])
    ctl = build(provider)
    events = [ctl.process_frame(frame, i * 0.1) for i in range(4)]
    kinds = [e.kind for e in events if e is not None]
    assert kinds == ["confirmed", "lost"]
    assert ctl.last_label is PoseLabel.NONE


def test_inference_failure_is_recovered(build, frame, target_sample, inference_error):
    provider = ScriptedProvider(script=[inference_error, [target_sample]])
    ctl = build(provider)
    assert ctl.process_frame(frame, 0.0) is None
    assert ctl.inference_failures == 1
    assert ctl.process_frame(frame, 0.1).kind == "confirmed"


def test_any_matching_body_wins(build, frame, target_sample, off_sample):
    ctl = build(ScriptedProvider(default=[off_sample, target_sample]))
    assert ctl.process_frame(frame, 0.0).kind == "confirmed"
    latest = ctl.latest()
    assert latest.label is PoseLabel.TARGET
    assert latest.angles[0] == pytest.approx(165.0)


def test_frames_are_written_only_while_recording(build, frame, target_sample):
    capture = FakeCapture()
    ctl = build(ScriptedProvider(default=[target_sample]), capture=capture)
    ctl.process_frame(frame, 0.0)
    assert capture.frames_written == 0
    ctl.machine.drain()
    ctl.process_frame(frame, 0.1)
    ctl.process_frame(frame, 0.2)
    assert capture.frames_written == 2


def test_manual_stop_through_controller(build, frame, target_sample, scheduler):
    ctl = build(ScriptedProvider(default=[target_sample]))
    ctl.process_frame(frame, 0.0)
    ctl.machine.drain()
    ctl.request_stop()
    ctl.machine.drain()
    assert ctl.machine.status is S.PERSISTING
    assert scheduler.pending == 0


def test_run_consumes_slot_until_closed(build, frame, off_sample):
    ctl = build(ScriptedProvider(default=[off_sample]))
    slot = LatestFrameSlot()
    slot.offer(frame, 0.0)
    worker = threading.Thread(target=ctl.run, args=(slot, threading.Event(), 0.01))
    worker.start()
    worker.join(timeout=0.5)
    slot.close()
    worker.join(timeout=2.0)
    assert not worker.is_alive()
    assert ctl.frames_processed == 1
    assert ctl.provider.calls == 1


def test_notice_expires_back_to_pose_label(build, frame, target_sample, scheduler, storage, clock):
    ctl = build(ScriptedProvider(default=[target_sample]))
    _record_one(ctl, scheduler, frame)
    storage.succeed()
    ctl.machine.drain()
    assert ctl.status.current == NOTICE_SAVED

    # the subject keeps holding the pose; the notice still shows for its lifetime
    clock.t += 1.0
    ctl.process_frame(frame, 6.0)
    assert ctl.status.current == NOTICE_SAVED
    clock.t += 1.5
    ctl.process_frame(frame, 7.0)
    assert ctl.status.current == PoseLabel.TARGET.value
    assert ctl.published[-2:] == [NOTICE_SAVED, PoseLabel.TARGET.value]


def test_status_unchanged_when_label_repeats(build, frame, off_sample):
    ctl = build(ScriptedProvider(default=[off_sample]))
    for i in range(5):
        ctl.process_frame(frame, i * 0.1)
    assert ctl.published == []
    assert ctl.status.current == PoseLabel.NONE.value


def test_make_sample_helper_is_consistent():
    assert LandmarkClassifier().classify(make_sample(170.0, 160.0)) is PoseLabel.TARGET
