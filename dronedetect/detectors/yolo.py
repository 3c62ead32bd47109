from __future__ import annotations

from pathlib import Path
from typing import Sequence

import logging
import numpy as np
import torch
from ultralytics import YOLO

from ..models import Delegate, Detection
from .base import ObjectDetector


logger = logging.getLogger(__name__)


def _select_device(delegate: Delegate = Delegate.GPU) -> str:
    """Map the delegate to a torch device: GPU prefers MPS (Apple) > CUDA, else CPU."""
    if delegate == Delegate.CPU:
        return "cpu"
    try:
        if torch.backends.mps.is_available():
            return "mps"
        if torch.cuda.is_available():
            return "cuda"
    except Exception:
        # Any probing issue -> fall back to CPU
        pass
    logger.warning("GPU delegate requested but no GPU is available; using CPU")
    return "cpu"


class YOLODetector(ObjectDetector):
    def __init__(
        self,
        model_path: str | Path,
        threshold: float = 0.4,
        max_results: int = 5,
        delegate: Delegate = Delegate.CPU,
    ) -> None:
        self.model = YOLO(str(model_path))
        self.threshold = threshold
        self.max_results = max_results
        self.device = _select_device(delegate)
        logger.info("YOLODetector using device: %s (delegate=%s)", self.device, delegate.value)
        # Map class id -> name
        if hasattr(self.model, "model") and hasattr(self.model.model, "names"):
            names = self.model.model.names  # type: ignore[attr-defined]
        else:
            names = getattr(self.model, "names", {})
        if isinstance(names, list):
            self.class_names = {i: name for i, name in enumerate(names)}
        else:
            self.class_names = {int(k): v for k, v in names.items()}

    def warmup(self) -> None:
        dummy = np.zeros((320, 320, 3), dtype=np.uint8)
        _ = self.model.predict(
            dummy,
            imgsz=320,
            conf=self.threshold,
            max_det=self.max_results,
            verbose=False,
            device=self.device,
        )

    def detect(self, frame_bgr: np.ndarray) -> Sequence[Detection]:
        # Ultralytics expects RGB
        frame_rgb = frame_bgr[:, :, ::-1]
        results = self.model.predict(
            frame_rgb,
            conf=self.threshold,
            max_det=self.max_results,
            verbose=False,
            device=self.device,
        )
        out: list[Detection] = []
        if not results:
            return out
        r = results[0]
        boxes = getattr(r, "boxes", None)
        if boxes is None:
            return out
        xyxy = boxes.xyxy.cpu().numpy() if hasattr(boxes, "xyxy") else None
        conf = boxes.conf.cpu().numpy() if hasattr(boxes, "conf") else None
        cls = boxes.cls.cpu().numpy() if hasattr(boxes, "cls") else None
        if xyxy is None or conf is None or cls is None:
            return out
        for (x1, y1, x2, y2), sc, ci in zip(xyxy, conf, cls):
            name = str(self.class_names.get(int(ci), str(int(ci)))).lower()
            out.append(Detection(float(x1), float(y1), float(x2), float(y2), float(sc), name))
        # max_det already caps the count; keep the cap if a backend ignores it
        return out[: self.max_results]

    def close(self) -> None:  # pragma: no cover
        # Nothing to close for Ultralytics
        return
