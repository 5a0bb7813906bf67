from __future__ import annotations

import argparse
import logging
import sys
import threading
import time

import cv2

from posetrigger.common.config import Settings
from posetrigger.common.errors import PoseTriggerError
from posetrigger.common.schemas import DetectionEvent, SessionStatus
from posetrigger.common.utils import format_event_json, now_s
from posetrigger.controller import PoseTriggerController
from posetrigger.ingest.pump import FramePump, LatestFrameSlot
from posetrigger.ingest.source import VideoSource
from posetrigger.pose.classifier import LandmarkClassifier
from posetrigger.pose.mediapipe_pose import MediaPipePoseLandmarker
from posetrigger.reasoner.debounce import DetectionDebouncer
from posetrigger.reasoner.fsm import RecordingStateMachine
from posetrigger.record.capture import OpenCVClipCapture
from posetrigger.record.storage import LibraryStore
from posetrigger.viz.overlay import draw_overlays


logger = logging.getLogger("posetrigger")


def parse_args(defaults: Settings, argv=None) -> argparse.Namespace:
    src, inf, cls, deb, rec = defaults.source, defaults.inference, defaults.classifier, defaults.debounce, defaults.recording
    p = argparse.ArgumentParser("posetrigger", description="Record a short clip whenever the target pose is held")
    p.add_argument("--source", choices=["webcam", "file"], default=src.kind)
    p.add_argument("--path", type=str, default=src.path)
    p.add_argument("--camera", type=int, default=src.camera_index)
    p.add_argument("--width", type=int, default=src.width)
    p.add_argument("--height", type=int, default=src.height)
    p.add_argument("--fps", type=int, default=src.fps)
    p.add_argument(
        "--no-realtime", dest="realtime", action="store_false", default=src.realtime,
        help="Read video files as fast as inference allows",
    )
    p.add_argument("--model", type=str, default=inf.model_path, help="MediaPipe pose_landmarker .task file")
    p.add_argument("--num-poses", type=int, default=inf.num_poses)
    p.add_argument("--min-detection-conf", type=float, default=inf.min_pose_detection_confidence)
    p.add_argument("--angle-min", type=float, default=cls.angle_min_deg)
    p.add_argument("--angle-max", type=float, default=cls.angle_max_deg)
    p.add_argument("--cooldown", type=float, default=deb.cooldown_s)
    p.add_argument("--lost-after", type=int, default=deb.lost_after)
    p.add_argument("--repeat-while-held", action="store_true", default=deb.repeat_while_held)
    p.add_argument("--clip-seconds", type=float, default=rec.clip_seconds)
    p.add_argument("--tmp-dir", type=str, default=rec.tmp_dir)
    p.add_argument("--library", type=str, default=rec.library_dir)
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    p.add_argument("--no-display", action="store_true")
    return p.parse_args(argv)


def settings_from_args(defaults: Settings, args: argparse.Namespace) -> Settings:
    data = defaults.model_dump()
    data["source"].update(
        kind=args.source,
        path=args.path,
        camera_index=args.camera,
        width=args.width,
        height=args.height,
        fps=args.fps,
        realtime=args.realtime,
    )
    data["inference"].update(
        model_path=args.model, num_poses=args.num_poses, min_pose_detection_confidence=args.min_detection_conf
    )
    data["classifier"].update(angle_min_deg=args.angle_min, angle_max_deg=args.angle_max)
    data["debounce"].update(
        cooldown_s=args.cooldown, lost_after=args.lost_after, repeat_while_held=args.repeat_while_held
    )
    data["recording"].update(clip_seconds=args.clip_seconds, tmp_dir=args.tmp_dir, library_dir=args.library)
    return Settings.model_validate(data)


def _print_event(event: DetectionEvent) -> None:
    print(format_event_json(event), flush=True)


def _wait_until_armed(machine: RecordingStateMachine, timeout_s: float) -> bool:
    deadline = now_s() + timeout_s
    while now_s() < deadline:
        if machine.status is SessionStatus.ARMED:
            return True
        time.sleep(0.05)
    return machine.status is SessionStatus.ARMED


def main(argv=None) -> int:
    defaults = Settings.from_env()
    args = parse_args(defaults, argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )
    settings = settings_from_args(defaults, args)

    source = None
    provider = None
    capture = None
    store = None
    controller = None
    pump = None
    window_name = "posetrigger"
    stop = threading.Event()
    worker = None

    try:
        source = VideoSource(settings.source)
        provider = MediaPipePoseLandmarker(settings.inference)
        capture = OpenCVClipCapture(
            settings.source.width, settings.source.height, settings.recording.fps or source.fps
        )
        store = LibraryStore(settings.recording.library_dir)
        machine = RecordingStateMachine(
            capture=capture,
            storage=store,
            clip_seconds=settings.recording.clip_seconds,
            tmp_dir=settings.recording.tmp_dir,
        )
        controller = PoseTriggerController(
            provider=provider,
            classifier=LandmarkClassifier(settings.classifier),
            debouncer=DetectionDebouncer(settings.debounce),
            machine=machine,
            capture=capture,
            on_event=_print_event,
        )
        controller.status.subscribe(lambda text: logger.info("Status: %s", text))

        slot = LatestFrameSlot()
        pump = FramePump(source, slot)
        controller.start_recorder()
        worker = threading.Thread(target=controller.run, args=(slot, stop), name="PoseWorker", daemon=True)
        worker.start()
        pump.start()

        ema_fps = 0.0
        last_ts = None
        if not args.no_display:
            cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)

        while worker.is_alive():
            if args.no_display:
                worker.join(timeout=0.2)
                continue
            res = controller.latest()
            if res is not None and res.ts != last_ts:
                if last_ts is not None:
                    inst_fps = 1.0 / max(1e-6, res.ts - last_ts)
                    ema_fps = 0.9 * ema_fps + 0.1 * inst_fps if ema_fps > 0 else inst_fps
                last_ts = res.ts
                view = res.frame.copy()
                draw_overlays(
                    view,
                    controller.frames_processed,
                    ema_fps,
                    controller.status.current,
                    machine.status,
                    label=res.label,
                    sample=res.samples[0] if res.samples else None,
                    angles=res.angles,
                )
                cv2.imshow(window_name, view)
            key = cv2.waitKey(15) & 0xFF
            if key in (27, ord("q")):
                break
            if key == ord("s"):
                controller.request_stop()

        # Let an in-flight clip finish and persist before exiting
        if machine.status is SessionStatus.RECORDING:
            controller.request_stop()
        if not _wait_until_armed(machine, timeout_s=settings.recording.clip_seconds + 10.0):
            logger.warning("Recorder still %s at shutdown", machine.status.value)
    except KeyboardInterrupt:
        pass
    except (PoseTriggerError, RuntimeError, ValueError) as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1
    finally:
        stop.set()
        if pump is not None:
            pump.stop()
        if worker is not None:
            worker.join(timeout=2.0)
        if controller is not None:
            controller.stop_recorder()
        if capture is not None:
            capture.close()
        if store is not None:
            store.close()
        if provider is not None:
            provider.close()
        if source is not None:
            source.release()
        if not args.no_display:
            cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    sys.exit(main())
