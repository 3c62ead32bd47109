from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Delegate(str, Enum):
    CPU = "CPU"
    GPU = "GPU"


class DetectorModel(str, Enum):
    DRONE_MOBILENET_V2 = "DRONE_MOBILENET_V2"
    DRONE_MOBILENET_V2_FP16 = "DRONE_MOBILENET_V2_FP16"
    LIFESTUFF_MOBILENET_V1 = "LIFESTUFF_MOBILENET_V1"

    @property
    def weights_filename(self) -> str:
        return f"{self.value.lower()}.pt"


@dataclass(frozen=True)
class DetectionParams:
    threshold: float = 0.4
    max_results: int = 5
    delegate: Delegate = Delegate.CPU
    model: DetectorModel = DetectorModel.DRONE_MOBILENET_V2


@dataclass(frozen=True)
class Detection:
    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    cls_name: str


@dataclass(frozen=True)
class DetectionResult:
    timestamp_ms: int  # sample tick, not decode position
    detections: tuple[Detection, ...] = ()

    @classmethod
    def empty(cls, timestamp_ms: int) -> DetectionResult:
        return cls(timestamp_ms=timestamp_ms, detections=())

    def __len__(self) -> int:
        return len(self.detections)


@dataclass(frozen=True)
class BatchDetectionOutcome:
    """
    Per-sample results of one batch pass. Index order equals temporal sample
    order; the length is fixed once constructed.
    """

    results: tuple[DetectionResult, ...]
    inference_time_ms: float
    interval_ms: int

    def __len__(self) -> int:
        return len(self.results)

    def get(self, index: int) -> DetectionResult | None:
        """Return the result at `index`, or None when the index is out of range."""
        if index < 0 or index >= len(self.results):
            return None
        return self.results[index]

