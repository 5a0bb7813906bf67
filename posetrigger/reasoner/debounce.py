from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from posetrigger.common.config import DebounceConfig
from posetrigger.common.schemas import DetectionEvent, PoseLabel


logger = logging.getLogger(__name__)


@dataclass
class _DebounceState:
    confirmed: PoseLabel = PoseLabel.NONE
    last_confirm_ts: Optional[float] = None
    none_run: int = 0


class DetectionDebouncer:
    """Turns the noisy per-frame label stream into confirmed/lost transitions.

    A target label is confirmed on its rising edge, but never sooner than
    ``cooldown_s`` after the previous confirmation. Short "no pose" gaps shorter
    than ``lost_after`` frames keep the current confirmation alive.
    """

    def __init__(self, config: Optional[DebounceConfig] = None):
        cfg = config or DebounceConfig()
        self.cooldown_s = float(cfg.cooldown_s)
        self.lost_after = int(cfg.lost_after)
        self.repeat_while_held = bool(cfg.repeat_while_held)
        self._st = _DebounceState()

    @property
    def confirmed(self) -> PoseLabel:
        return self._st.confirmed

    def _cooldown_elapsed(self, ts: float) -> bool:
        last = self._st.last_confirm_ts
        return last is None or (ts - last) >= self.cooldown_s

    def observe(self, label: PoseLabel, ts: float) -> Optional[DetectionEvent]:
        st = self._st
        if label is PoseLabel.NONE:
            if st.confirmed is PoseLabel.NONE:
                return None
            st.none_run += 1
            if st.none_run < self.lost_after:
                return None
            lost = DetectionEvent(kind="lost", label=st.confirmed, ts=ts)
            st.confirmed = PoseLabel.NONE
            st.none_run = 0
            return lost

        st.none_run = 0
        changed = label is not st.confirmed
        if changed:
            should_emit = self._cooldown_elapsed(ts)
        else:
            should_emit = self.repeat_while_held and self._cooldown_elapsed(ts)
        if not should_emit:
            if changed:
                logger.debug("Suppressed %s within cooldown (%.2fs)", label.value, self.cooldown_s)
            return None

        st.confirmed = label
        st.last_confirm_ts = ts
        return DetectionEvent(kind="confirmed", label=label, ts=ts)
