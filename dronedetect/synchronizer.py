"""
Replays a batch of per-frame detection results in step with video playback.

The player exposes no position, so results are picked by wall-clock time
elapsed since the batch pass completed. Playback itself starts as soon as the
player is prepared; the overlay starts from result 0 once detection is done.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path

from .detectors.base import ObjectDetector
from .errors import ConfigurationError, VideoUnreadable
from .models import BatchDetectionOutcome
from .pipeline import detect_video_file
from .player import Player
from .publication import LatestResultSink, PublicationSink
from .scheduling import ScheduledTask, SingleThreadScheduler

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 300


class PlaybackState(str, Enum):
    IDLE = "IDLE"
    PREPARING = "PREPARING"
    READY = "READY"
    PLAYING = "PLAYING"
    FAILED = "FAILED"
    FINISHED = "FINISHED"


_TERMINAL = (PlaybackState.FAILED, PlaybackState.FINISHED)


@dataclass(frozen=True)
class PlaybackClock:
    started_at_ms: float

    def elapsed_ms(self, now_ms: float) -> float:
        return max(0.0, now_ms - self.started_at_ms)


def sample_index(elapsed_ms: float, interval_ms: int) -> int:
    if interval_ms <= 0:
        raise ConfigurationError(f"Sampling interval must be positive, got {interval_ms} ms")
    if elapsed_ms <= 0:
        return 0
    return int(elapsed_ms // interval_ms)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class PlaybackSynchronizer:
    """
    State machine for one playback session at a time.

    IDLE -> PREPARING on `start`; PREPARING -> READY when the player reports
    it is prepared (playback starts and the batch pass is submitted to the
    session worker); READY -> PLAYING when the pass completes with results;
    PLAYING -> FINISHED when the sample index runs past the buffer. Fatal
    errors move to FAILED. `teardown` returns to IDLE from any state.

    Every callback carries the session number it was issued for; callbacks of
    a retired session are ignored.
    """

    def __init__(
        self,
        player: Player,
        detector_factory: Callable[[], ObjectDetector],
        sink: PublicationSink | None = None,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        clock: Callable[[], float] = _monotonic_ms,
        scheduler_factory: Callable[[], SingleThreadScheduler] = SingleThreadScheduler,
    ) -> None:
        if interval_ms <= 0:
            raise ConfigurationError(f"Sampling interval must be positive, got {interval_ms} ms")
        self.player = player
        self.detector_factory = detector_factory
        self.sink = sink if sink is not None else LatestResultSink()
        self.interval_ms = int(interval_ms)
        self._clock = clock
        self._scheduler_factory = scheduler_factory

        self._lock = threading.RLock()
        self._done = threading.Event()
        self._state = PlaybackState.IDLE
        self._session = 0
        self._source: Path | None = None
        self._scheduler: SingleThreadScheduler | None = None
        self._tick_task: ScheduledTask | None = None
        self._outcome: BatchDetectionOutcome | None = None
        self._playback_clock: PlaybackClock | None = None
        self._video_size: tuple[int, int] | None = None

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def video_size(self) -> tuple[int, int] | None:
        return self._video_size

    @property
    def outcome(self) -> BatchDetectionOutcome | None:
        return self._outcome

    @property
    def playback_clock(self) -> PlaybackClock | None:
        return self._playback_clock

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the session finishes, fails or is torn down."""
        return self._done.wait(timeout)

    def _set_state(self, state: PlaybackState) -> None:
        logger.debug("Playback state: %s -> %s", self._state.value, state.value)
        self._state = state
        if state in _TERMINAL or state == PlaybackState.IDLE:
            self._done.set()
        else:
            self._done.clear()

    def _is_current(self, session: int, *states: PlaybackState) -> bool:
        return session == self._session and self._state in states

    # --- session lifecycle -------------------------------------------------------

    def start(self, source: Path) -> None:
        with self._lock:
            if self._state != PlaybackState.IDLE or self._scheduler is not None:
                self.teardown()
            self._session += 1
            session = self._session
            self._source = source
            self._scheduler = self._scheduler_factory()
            self._set_state(PlaybackState.PREPARING)
            self.sink.on_not_ready()
            logger.info("Session %d: preparing %s", session, source)
            self.player.load(source)
        try:
            self.player.prepare_async(
                on_ready=partial(self._on_prepared, session),
                on_error=partial(self._on_prepare_failed, session),
            )
        except Exception as e:
            self._on_prepare_failed(session, e)

    def teardown(self) -> None:
        """
        Retire the current session: cancel the tick and the worker before the
        player is released, then drop the outcome and the clock and clear what
        the sink is showing.
        """
        with self._lock:
            if self._state == PlaybackState.IDLE and self._scheduler is None:
                return
            logger.info("Session %d: teardown (state=%s)", self._session, self._state.value)
            self._session += 1
            self._retire_worker()
            self.player.stop()
            self.player.release()
            self._outcome = None
            self._playback_clock = None
            self._video_size = None
            self._source = None
            self._set_state(PlaybackState.IDLE)
            self.sink.on_teardown()

    def _retire_worker(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    def _fail(self, session: int, error: Exception) -> None:
        with self._lock:
            if session != self._session or self._state in _TERMINAL:
                return
            logger.error("Session %d failed: %s", session, error)
            self._retire_worker()
            self._set_state(PlaybackState.FAILED)
            self.sink.on_failed(error)

    def _finish(self) -> None:
        self._retire_worker()
        self._set_state(PlaybackState.FINISHED)
        self.sink.on_finished()

    # --- external signals --------------------------------------------------------

    def _on_prepared(self, session: int, width: int, height: int) -> None:
        with self._lock:
            if not self._is_current(session, PlaybackState.PREPARING):
                logger.debug("Ignoring preparation signal of retired session %d", session)
                return
            self._video_size = (width, height)
            self._set_state(PlaybackState.READY)
            logger.info("Session %d: player ready %dx%d, starting playback", session, width, height)
            self.player.start()
            self._scheduler.submit(partial(self._run_batch_pass, session))

    def _on_prepare_failed(self, session: int, error: Exception) -> None:
        self._fail(session, error)

    def _run_batch_pass(self, session: int) -> None:
        with self._lock:
            if not self._is_current(session, PlaybackState.READY):
                return
            source = self._source

        try:
            detector = self.detector_factory()
        except Exception as e:
            logger.exception("Session %d: detector could not be created", session)
            self._fail(session, e)
            return
        try:
            # Keeps first-call model setup out of the per-frame inference time
            detector.warmup()
            outcome = detect_video_file(source, self.interval_ms, detector, logger)
        except VideoUnreadable as e:
            self._fail(session, e)
            return
        except Exception as e:
            logger.exception("Session %d: detection pass crashed", session)
            self._fail(session, e)
            return
        finally:
            self._close_detector(session, detector)

        self._on_batch_complete(session, outcome)

    @staticmethod
    def _close_detector(session: int, detector: ObjectDetector) -> None:
        try:
            detector.close()
        except Exception:
            logger.exception("Session %d: detector close failed", session)

    def _on_batch_complete(self, session: int, outcome: BatchDetectionOutcome) -> None:
        with self._lock:
            if not self._is_current(session, PlaybackState.READY):
                logger.info("Discarding detection outcome of retired session %d", session)
                return
            if len(outcome) == 0:
                logger.info("Session %d: no samples to replay", session)
                self._finish()
                return
            self._outcome = outcome
            # Overlay time restarts here; playback has been running since READY
            self._playback_clock = PlaybackClock(self._clock())
            self._set_state(PlaybackState.PLAYING)
            logger.info(
                "Session %d: replaying %d results every %dms",
                session,
                len(outcome),
                self.interval_ms,
            )
            self._tick_task = self._scheduler.schedule_with_fixed_delay(
                partial(self._tick, session),
                initial_delay=0.0,
                delay=self.interval_ms / 1000.0,
            )

    def _tick(self, session: int) -> None:
        with self._lock:
            if not self._is_current(session, PlaybackState.PLAYING):
                return
            elapsed = self._playback_clock.elapsed_ms(self._clock())
            index = sample_index(elapsed, self.interval_ms)
            result = self._outcome.get(index)
            if result is None:
                logger.info("Session %d: results exhausted at index %d", session, index)
                self._finish()
                return
            self.sink.on_result_published(result, self._outcome.inference_time_ms)
