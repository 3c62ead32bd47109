from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from .cli import parse_args
from .config import load_config, validate_config
from .detectors.factory import create_detector
from .errors import ConfigurationError
from .logging_setup import setup_logging
from .pipeline import is_video_file
from .player import OpenCVPlayer
from .publication import CompositeSink, JsonLinesSink, LoggingSink, PublicationSink
from .synchronizer import PlaybackState, PlaybackSynchronizer
from .watcher import watch_directory

if TYPE_CHECKING:
    from .config import AppConfig


def _build_sink(video: Path, cfg: AppConfig, logger: logging.Logger) -> PublicationSink:
    sinks: list[PublicationSink] = [LoggingSink(logger)]
    if cfg.write_jsonl:
        sinks.append(JsonLinesSink(cfg.output_dir / f"{video.stem}.detections.jsonl"))
    return CompositeSink(sinks)


def _build_session(video: Path, cfg: AppConfig, logger: logging.Logger) -> PlaybackSynchronizer:
    params = cfg.detection_params()
    model_path = cfg.resolve_model_path()
    return PlaybackSynchronizer(
        player=OpenCVPlayer(),
        detector_factory=lambda: create_detector(params, model_path=model_path),
        sink=_build_sink(video, cfg, logger),
        interval_ms=cfg.interval_ms,
    )


def play_video(
    path: Path,
    cfg: AppConfig,
    logger: logging.Logger,
    timeout: float | None = None,
) -> PlaybackState:
    """Run one session to completion and return its final state."""
    session = _build_session(path, cfg, logger)
    session.start(path)
    try:
        session.wait(timeout)
        return session.state
    finally:
        session.teardown()


class SessionManager:
    """Owns the single active session; a new video retires the running one first."""

    def __init__(
        self,
        cfg: AppConfig,
        logger: logging.Logger,
        session_factory: Callable[[Path, AppConfig, logging.Logger], PlaybackSynchronizer] = _build_session,
    ) -> None:
        self.cfg = cfg
        self.logger = logger
        self.session_factory = session_factory
        self._lock = threading.Lock()
        self._current: PlaybackSynchronizer | None = None

    @property
    def current(self) -> PlaybackSynchronizer | None:
        return self._current

    def play(self, path: Path) -> None:
        with self._lock:
            if self._current is not None:
                self.logger.info("Replacing running session with %s", path.name)
                self._current.teardown()
                self._current = None
            session = self.session_factory(path, self.cfg, self.logger)
            session.start(path)
            self._current = session

    def close(self) -> None:
        with self._lock:
            if self._current is not None:
                self._current.teardown()
                self._current = None


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = load_config(
        args.input,
        args.output,
        args.video,
        model=args.model,
        delegate=args.delegate,
        threshold=args.threshold,
        max_results=args.max_results,
        interval_ms=args.interval_ms,
    )

    logger = setup_logging(cfg.output_dir, level=cfg.log_level)
    logger.info("DroneDetect started")
    logger.info("Output: %s", cfg.output_dir)
    logger.info(
        "Model: %s | delegate=%s threshold=%.2f max_results=%d interval=%dms",
        cfg.model.value,
        cfg.delegate.value,
        cfg.threshold,
        cfg.max_results,
        cfg.interval_ms,
    )

    try:
        validate_config(cfg)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    if cfg.video is not None:
        if not cfg.video.is_file():
            logger.error("Video not found: %s", cfg.video)
            return 1
        state = play_video(cfg.video, cfg, logger)
        logger.info("Session ended: %s", state.value)
        return 0 if state == PlaybackState.FINISHED else 1

    cfg.input_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Input: %s", cfg.input_dir)
    for p in sorted(cfg.input_dir.iterdir()):
        if p.is_file() and is_video_file(p):
            logger.info("Found existing file (drop it again to play): %s", p.name)

    manager = SessionManager(cfg, logger)

    def on_video_ready(p: Path) -> None:
        try:
            manager.play(p)
        except Exception as e:
            logger.exception("Error while starting session for %s: %s", p, e)

    try:
        watch_directory(cfg.input_dir, on_video_ready, cfg.file_stability_seconds, logger)
    finally:
        manager.close()
    return 0
