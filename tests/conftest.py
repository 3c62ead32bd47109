from __future__ import annotations

import sys
import types
from pathlib import Path

import numpy as np
import pytest

from dronedetect.models import BatchDetectionOutcome, Detection, DetectionResult
from dronedetect.player import Player
from dronedetect.publication import PublicationSink
from dronedetect.scheduling import ScheduledTask


class ManualScheduler:
    """Scheduler double: tasks run only when the test says so."""

    def __init__(self) -> None:
        self.submitted: list[ScheduledTask] = []
        self.periodic: list[ScheduledTask] = []
        self.shut = False

    def submit(self, fn):
        task = ScheduledTask(fn, delay=None)
        self.submitted.append(task)
        return task

    def schedule_with_fixed_delay(self, fn, initial_delay, delay):
        task = ScheduledTask(fn, delay=delay)
        task.initial_delay = initial_delay
        self.periodic.append(task)
        return task

    def shutdown(self, wait=False, timeout=None):
        self.shut = True

    def run_pending(self) -> None:
        while self.submitted:
            task = self.submitted.pop(0)
            if not task.cancelled:
                task.fn()

    def tick(self) -> None:
        for task in list(self.periodic):
            if not task.cancelled:
                task.fn()

    @property
    def live_periodic(self) -> list[ScheduledTask]:
        return [t for t in self.periodic if not t.cancelled]


class FakePlayer(Player):
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.source: Path | None = None
        self.on_ready = None
        self.on_error = None

    def load(self, source: Path) -> None:
        self.calls.append("load")
        self.source = source

    def prepare_async(self, on_ready, on_error) -> None:
        self.calls.append("prepare")
        self.on_ready = on_ready
        self.on_error = on_error

    def start(self) -> None:
        self.calls.append("start")

    def stop(self) -> None:
        self.calls.append("stop")

    def release(self) -> None:
        self.calls.append("release")

    @property
    def natural_size(self) -> tuple[int, int]:
        return (1, 1)


class RecordingSink(PublicationSink):
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_result_published(self, result, inference_time_ms) -> None:
        self.events.append(("result", result, inference_time_ms))

    def on_not_ready(self) -> None:
        self.events.append(("not_ready",))

    def on_failed(self, error) -> None:
        self.events.append(("failed", error))

    def on_finished(self) -> None:
        self.events.append(("finished",))

    def on_teardown(self) -> None:
        self.events.append(("teardown",))

    @property
    def published(self) -> list[DetectionResult]:
        return [e[1] for e in self.events if e[0] == "result"]


class FakeClock:
    def __init__(self, start_ms: float = 0.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms


class CaptureStub:
    """Seekable capture double: frames exist at every multiple of 1000/fps ms."""

    def __init__(self, opened=True, fps=30.0, frames=27, size=(64, 48), bad_at=()):
        self.opened = opened
        self.fps = fps
        self.frames = frames
        self.size = size
        self.bad_at = set(bad_at)
        self.pos_ms = 0.0
        self.seeks: list[float] = []
        self.released = False

    def isOpened(self):
        return self.opened

    def get(self, prop):
        return {
            CV2_CONSTANTS.CAP_PROP_FPS: self.fps,
            CV2_CONSTANTS.CAP_PROP_FRAME_COUNT: self.frames,
            CV2_CONSTANTS.CAP_PROP_FRAME_WIDTH: self.size[0],
            CV2_CONSTANTS.CAP_PROP_FRAME_HEIGHT: self.size[1],
        }.get(prop, 0)

    def set(self, prop, value):
        assert prop == CV2_CONSTANTS.CAP_PROP_POS_MSEC
        self.pos_ms = value
        self.seeks.append(value)
        return True

    def read(self):
        if self.fps > 0 and self.pos_ms >= self.frames * 1000.0 / self.fps:
            return False, None
        if int(self.pos_ms) in self.bad_at:
            return False, None
        frame = np.full((self.size[1], self.size[0], 3), int(self.pos_ms) % 255, dtype=np.uint8)
        # Sequential reads advance by one frame
        self.pos_ms += 1000.0 / self.fps if self.fps > 0 else 40.0
        return True, frame

    def release(self):
        self.released = True


CV2_CONSTANTS = types.SimpleNamespace(
    CAP_PROP_POS_MSEC=0,
    CAP_PROP_FRAME_WIDTH=3,
    CAP_PROP_FRAME_HEIGHT=4,
    CAP_PROP_FPS=5,
    CAP_PROP_FRAME_COUNT=7,
)


def install_cv2(monkeypatch: pytest.MonkeyPatch, cap: CaptureStub) -> CaptureStub:
    cv2 = types.SimpleNamespace(**vars(CV2_CONSTANTS))
    cv2.VideoCapture = lambda *_a, **_k: cap
    monkeypatch.setitem(sys.modules, "cv2", cv2)
    return cap


def make_outcome(n: int, interval_ms: int = 300, inference_ms: float = 12.0) -> BatchDetectionOutcome:
    results = tuple(
        DetectionResult(
            timestamp_ms=i * interval_ms,
            detections=(Detection(i, i, i + 10, i + 10, 0.5, "drone"),),
        )
        for i in range(n)
    )
    return BatchDetectionOutcome(results=results, inference_time_ms=inference_ms, interval_ms=interval_ms)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(1_000.0)
