from __future__ import annotations

from pathlib import Path

from ..models import DetectionParams
from .base import ObjectDetector


def create_detector(params: DetectionParams, *, model_path: str | Path) -> ObjectDetector:
    # Lazy import so tests that don't run inference won't require ultralytics
    from .yolo import YOLODetector

    return YOLODetector(
        model_path=model_path,
        threshold=params.threshold,
        max_results=params.max_results,
        delegate=params.delegate,
    )
