from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import asdict
from pathlib import Path
from typing import Generic, TypeVar

from .models import DetectionResult

T = TypeVar("T")


class PublishedValue(Generic[T]):
    """Single-slot cell: one writer overwrites, readers see the latest value."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: T | None = None

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def get(self) -> T | None:
        with self._lock:
            return self._value

    def clear(self) -> None:
        with self._lock:
            self._value = None


class PublicationSink(ABC):
    """
    Receives publications from the synchronizer. Methods are called from the
    background worker (or the player thread for preparation failures); an
    implementation that renders must switch context itself.
    """

    @abstractmethod
    def on_result_published(self, result: DetectionResult, inference_time_ms: float) -> None:
        """A new result is current for display."""

    @abstractmethod
    def on_not_ready(self) -> None:
        """No result is available yet; show a loading state."""

    def on_failed(self, error: Exception) -> None:
        logging.getLogger(__name__).error("Session failed: %s", error)

    def on_finished(self) -> None:
        return

    def on_teardown(self) -> None:
        """The session was retired; anything still shown belongs to it."""
        return


class LatestResultSink(PublicationSink):
    """Keeps only the current result and the ready/failed flags for polling readers."""

    def __init__(self) -> None:
        self._latest: PublishedValue[tuple[DetectionResult, float]] = PublishedValue()
        self._error: PublishedValue[Exception] = PublishedValue()
        self._finished = threading.Event()

    def on_result_published(self, result: DetectionResult, inference_time_ms: float) -> None:
        self._latest.set((result, inference_time_ms))

    def on_not_ready(self) -> None:
        self._latest.clear()
        self._error.clear()
        self._finished.clear()

    def on_failed(self, error: Exception) -> None:
        self._error.set(error)

    def on_finished(self) -> None:
        self._finished.set()

    def on_teardown(self) -> None:
        self.on_not_ready()

    def latest(self) -> tuple[DetectionResult, float] | None:
        return self._latest.get()

    @property
    def ready(self) -> bool:
        return self._latest.get() is not None

    @property
    def error(self) -> Exception | None:
        return self._error.get()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()


class LoggingSink(PublicationSink):
    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def on_result_published(self, result: DetectionResult, inference_time_ms: float) -> None:
        if result.detections:
            labels = ", ".join(f"{d.cls_name}:{d.score:.2f}" for d in result.detections)
        else:
            labels = "-"
        self.logger.info(
            "t=%6dms | %d object(s) [%s] | inference=%.1fms",
            result.timestamp_ms,
            len(result.detections),
            labels,
            inference_time_ms,
        )

    def on_not_ready(self) -> None:
        self.logger.info("Waiting for detection results...")

    def on_failed(self, error: Exception) -> None:
        self.logger.error("Session failed: %s", error)

    def on_finished(self) -> None:
        self.logger.info("Playback overlay finished")


class JsonLinesSink(PublicationSink):
    """Appends every publication as one JSON object per line."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        path.parent.mkdir(parents=True, exist_ok=True)

    def _write(self, record: dict) -> None:
        with self._lock, open(self.path, "a", encoding="utf-8") as fh:
            fh.write(json.dumps(record) + "\n")

    def on_result_published(self, result: DetectionResult, inference_time_ms: float) -> None:
        self._write(
            {
                "event": "result",
                "timestamp_ms": result.timestamp_ms,
                "inference_time_ms": round(inference_time_ms, 3),
                "detections": [asdict(d) for d in result.detections],
            }
        )

    def on_not_ready(self) -> None:
        return

    def on_failed(self, error: Exception) -> None:
        self._write({"event": "failed", "error": type(error).__name__, "message": str(error)})

    def on_finished(self) -> None:
        self._write({"event": "finished"})


class CompositeSink(PublicationSink):
    def __init__(self, sinks: Iterable[PublicationSink]) -> None:
        self.sinks = list(sinks)

    def on_result_published(self, result: DetectionResult, inference_time_ms: float) -> None:
        for s in self.sinks:
            s.on_result_published(result, inference_time_ms)

    def on_not_ready(self) -> None:
        for s in self.sinks:
            s.on_not_ready()

    def on_failed(self, error: Exception) -> None:
        for s in self.sinks:
            s.on_failed(error)

    def on_finished(self) -> None:
        for s in self.sinks:
            s.on_finished()

    def on_teardown(self) -> None:
        for s in self.sinks:
            s.on_teardown()
