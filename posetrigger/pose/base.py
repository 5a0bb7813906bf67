from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from posetrigger.common.schemas import PoseSample


class PoseProvider(ABC):
    """
    Model adapter interface.

    Implementations take a BGR frame (H,W,3 uint8) and return zero or more PoseSamples,
    one per detected body. They may raise; callers treat a failure as "no pose".
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def infer(self, frame_bgr: np.ndarray, ts: float) -> List[PoseSample]: ...

    def close(self) -> None:
        pass
