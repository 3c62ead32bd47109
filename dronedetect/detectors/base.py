from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np

from ..models import Detection


class ObjectDetector(ABC):
    """
    Runs a detection model on single frames. An instance belongs to one batch
    pass on one worker: `warmup` is called once before the first frame and
    `close` once after the last.
    """

    def warmup(self) -> None:
        """Load lazily initialised state ahead of the first real frame."""
        return

    @abstractmethod
    def detect(self, frame_bgr: np.ndarray) -> Sequence[Detection]:
        """
        Detections for one BGR frame (OpenCV channel order), at most
        `max_results` of them, in frame-pixel coordinates.
        """

    @abstractmethod
    def close(self) -> None: ...
