from __future__ import annotations

import json
import logging
import subprocess
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from ..errors import ConfigurationError, VideoUnreadable

logger = logging.getLogger(__name__)


def probe_video(path: Path) -> tuple[float, int, float]:
    import cv2  # type: ignore

    cap = cv2.VideoCapture(str(path))
    if not cap.isOpened():
        raise VideoUnreadable(f"Cannot open video: {path}")
    try:
        return _probe_capture(cap, path)
    finally:
        cap.release()


def _probe_capture(cap, path: Path) -> tuple[float, int, float]:
    import cv2  # type: ignore

    fps = cap.get(cv2.CAP_PROP_FPS) or 25.0
    frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
    duration = frame_count / fps if frame_count > 0 else _probe_duration_ffmpeg(path)
    return float(fps), frame_count, float(duration)


def _probe_duration_ffmpeg(path: Path) -> float:
    try:
        cmd = [
            "ffprobe",
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            "-show_format",
            str(path),
        ]
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
        info = json.loads(result.stdout or "{}")
        for s in info.get("streams", []):
            if s.get("codec_type") == "video":
                dur = s.get("duration") or info.get("format", {}).get("duration")
                if dur is not None:
                    return float(dur)
        dur = info.get("format", {}).get("duration")
        if dur is not None:
            return float(dur)
    except Exception as e:
        logger.debug("ffprobe duration lookup failed for %s: %s", path, e)
    return 0.0


def sample_timestamps(duration_ms: int, interval_ms: int) -> list[int]:
    """Sampling ticks 0, interval, 2*interval, ... strictly below the duration."""
    if interval_ms <= 0:
        raise ConfigurationError(f"Sampling interval must be positive, got {interval_ms} ms")
    return list(range(0, max(0, duration_ms), interval_ms))


@dataclass(frozen=True)
class SampledFrame:
    timestamp_ms: int
    frame: np.ndarray | None  # None when the frame at this tick could not be decoded


class VideoSampler:
    """
    Lazily yields one frame per sampling tick from a video file, independent of
    any playback. The capture is opened eagerly so an unreadable file fails
    before the first tick.
    """

    def __init__(self, path: Path, interval_ms: int) -> None:
        import cv2  # type: ignore

        if interval_ms <= 0:
            raise ConfigurationError(f"Sampling interval must be positive, got {interval_ms} ms")
        self.path = path
        self.interval_ms = int(interval_ms)
        self._cap = cv2.VideoCapture(str(path))
        if not self._cap.isOpened():
            raise VideoUnreadable(f"Cannot open video: {path}")
        self.fps, self.frame_count, duration = _probe_capture(self._cap, path)
        self.duration_ms = int(round(duration * 1000))
        self._timestamps = sample_timestamps(self.duration_ms, self.interval_ms)

    @property
    def sample_count(self) -> int:
        return len(self._timestamps)

    def sample_timestamps(self) -> list[int]:
        return list(self._timestamps)

    def frame_size(self) -> tuple[int, int]:
        import cv2  # type: ignore

        if self._cap is None:
            return 0, 0
        return (
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
        )

    def __iter__(self) -> Iterator[SampledFrame]:
        import cv2  # type: ignore

        for t in self._timestamps:
            if self._cap is None:
                return
            frame = None
            try:
                # Seek to the frame nearest to the tick
                self._cap.set(cv2.CAP_PROP_POS_MSEC, float(t))
                ok, frame = self._cap.read()
                if not ok or frame is None or frame.size == 0:
                    frame = None
            except Exception as e:
                logger.warning("Decode failed at %d ms in %s: %s", t, self.path.name, e)
                frame = None
            yield SampledFrame(t, frame)

    def close(self) -> None:
        if self._cap is not None:
            try:
                self._cap.release()
            finally:
                self._cap = None

    def __enter__(self) -> VideoSampler:
        return self

    def __exit__(self, *_exc) -> None:
        self.close()
