from __future__ import annotations

import logging
import time
from pathlib import Path

from .detectors.base import ObjectDetector
from .errors import FrameDetectionFailed, VideoUnreadable
from .models import BatchDetectionOutcome, DetectionResult
from .processing.video import VideoSampler

VIDEO_EXTS = (".mp4", ".mov", ".avi", ".mkv", ".m4v")


def is_video_file(path: Path) -> bool:
    return path.suffix.lower() in VIDEO_EXTS


def detect_video_file(
    video_path: Path,
    interval_ms: int,
    detector: ObjectDetector,
    logger: logging.Logger,
) -> BatchDetectionOutcome:
    """
    Run `detector` over one frame per sampling tick and return the full,
    ordered outcome. Blocks for the whole pass; run it off the interactive
    thread.

    A frame that fails to decode or to detect is replaced by an empty result so
    the outcome always holds one entry per tick. Raises `VideoUnreadable` when
    the file cannot be opened, or when not a single sampled frame decodes.
    """
    with VideoSampler(video_path, interval_ms) as sampler:
        logger.info(
            "Detecting: %s | fps=%.2f frames=%d duration=%dms interval=%dms samples=%d",
            video_path.name,
            sampler.fps,
            sampler.frame_count,
            sampler.duration_ms,
            sampler.interval_ms,
            sampler.sample_count,
        )

        results: list[DetectionResult] = []
        inference_ms: list[float] = []
        decoded = 0

        for sample in sampler:
            t = sample.timestamp_ms
            if sample.frame is None:
                logger.warning(str(FrameDetectionFailed(t, "frame could not be decoded")))
                results.append(DetectionResult.empty(t))
                continue
            decoded += 1
            started = time.perf_counter()
            try:
                detections = detector.detect(sample.frame)
            except Exception as e:
                logger.warning(str(FrameDetectionFailed(t, repr(e))))
                results.append(DetectionResult.empty(t))
                continue
            inference_ms.append((time.perf_counter() - started) * 1000.0)
            results.append(DetectionResult(timestamp_ms=t, detections=tuple(detections)))

    if results and decoded == 0:
        raise VideoUnreadable(f"No frame of {video_path} could be decoded")

    avg_ms = sum(inference_ms) / len(inference_ms) if inference_ms else 0.0
    logger.info(
        "Detection pass finished: %s | results=%d with_boxes=%d avg_inference=%.1fms",
        video_path.name,
        len(results),
        sum(1 for r in results if r.detections),
        avg_ms,
    )
    return BatchDetectionOutcome(
        results=tuple(results),
        inference_time_ms=avg_ms,
        interval_ms=int(interval_ms),
    )
