import json

from posetrigger.common.config import DebounceConfig
from posetrigger.common.schemas import PoseLabel
from posetrigger.common.utils import format_event_json
from posetrigger.reasoner.debounce import DetectionDebouncer

T = PoseLabel.TARGET
N = PoseLabel.NONE


def feed(deb, labels, t0=0.0, dt=0.1):
    events = []
    for i, label in enumerate(labels):
        ev = deb.observe(label, t0 + i * dt)
        if ev is not None:
            events.append(ev)
    return events


def test_steady_no_pose_never_emits():
    assert feed(DetectionDebouncer(), [N] * 200) == []


def test_single_target_frame_in_noise_emits_one_confirm_and_one_lost():
    deb = DetectionDebouncer(DebounceConfig(cooldown_s=1.0, lost_after=3))
    events = feed(deb, [N, N, T, N, N, N, N, N])
    assert [e.kind for e in events] == ["confirmed", "lost"]
    assert events[0].ts == 0.2
    assert events[0].label is T
    # lost fires on the third consecutive no-pose frame
    assert abs(events[1].ts - 0.5) < 1e-9
    assert events[1].label is T
    assert deb.confirmed is N


def test_held_pose_confirms_once():
    events = feed(DetectionDebouncer(), [T] * 100)
    assert len(events) == 1


def test_short_gaps_do_not_retrigger():
    deb = DetectionDebouncer(DebounceConfig(lost_after=3))
    events = feed(deb, [T, N, T, N, N, T, T, N, T])
    assert [e.kind for e in events] == ["confirmed"]


def test_reacquire_within_cooldown_is_suppressed_until_elapsed():
    deb = DetectionDebouncer(DebounceConfig(cooldown_s=1.0, lost_after=1))
    assert deb.observe(T, 0.0).kind == "confirmed"
    assert deb.observe(N, 0.1).kind == "lost"
    assert deb.observe(T, 0.5) is None
    assert deb.observe(T, 0.9) is None
    ev = deb.observe(T, 1.0)
    assert ev is not None and ev.kind == "confirmed" and ev.ts == 1.0


def test_repeat_while_held_reconfirms_after_cooldown():
    deb = DetectionDebouncer(DebounceConfig(cooldown_s=1.0, repeat_while_held=True))
    events = feed(deb, [T] * 25, dt=0.1)
    assert [round(e.ts, 3) for e in events] == [0.0, 1.0, 2.0]


def test_event_json_is_compact_and_rounded():
    ev = DetectionDebouncer().observe(T, 12.3456789)
    line = format_event_json(ev, extra={"cam_id": "cam-0"})
    assert " " not in line.replace("Golf Pose Detected", "")
    data = json.loads(line)
    assert data == {"kind": "confirmed", "label": "Golf Pose Detected", "ts": 12.346, "cam_id": "cam-0"}
