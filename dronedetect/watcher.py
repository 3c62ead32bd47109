from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .pipeline import is_video_file


def wait_until_stable(
    path: Path,
    stable_seconds: float,
    poll_interval: float = 0.5,
    timeout: float = 600.0,
) -> bool:
    """
    Wait until file size and mtime remain stable for `stable_seconds`, so a
    video still being copied is not opened half-written.
    """
    start_time = time.time()
    last = (-1, -1.0)
    stable_since = None

    while time.time() - start_time <= timeout:
        try:
            stat = path.stat()
        except FileNotFoundError:
            time.sleep(poll_interval)
            continue
        current = (stat.st_size, stat.st_mtime)
        if current == last:
            if stable_since is None:
                stable_since = time.time()
            elif time.time() - stable_since >= stable_seconds:
                return True
        else:
            stable_since = None
            last = current
        time.sleep(poll_interval)
    return False


class _VideoArrivalHandler(FileSystemEventHandler):
    """Hands each newly arrived, fully written video to `on_ready` once."""

    def __init__(
        self,
        logger: logging.Logger,
        on_ready: Callable[[Path], None],
        stable_seconds: float,
    ):
        super().__init__()
        self.logger = logger
        self.on_ready = on_ready
        self.stable_seconds = stable_seconds
        self._pending: set[Path] = set()
        self._lock = threading.Lock()

    def _schedule(self, p: Path) -> None:
        with self._lock:
            if p in self._pending:
                return
            self._pending.add(p)

        def worker():
            try:
                if not wait_until_stable(p, self.stable_seconds):
                    self.logger.warning("Video did not become stable: %s", p)
                    return
                self.on_ready(p)
            finally:
                with self._lock:
                    self._pending.discard(p)

        threading.Thread(target=worker, name="dronedetect-arrival", daemon=True).start()

    def on_created(self, event):  # type: ignore[override]
        if event.is_directory:
            return
        p = Path(event.src_path)
        if is_video_file(p):
            self.logger.info("New video detected: %s", p.name)
            self._schedule(p)

    def on_moved(self, event):  # type: ignore[override]
        if event.is_directory:
            return
        p = Path(event.dest_path)
        if is_video_file(p):
            self.logger.info("Video moved in: %s", p.name)
            self._schedule(p)


def watch_directory(
    input_dir: Path,
    on_video_ready: Callable[[Path], None],
    stable_seconds: float,
    logger: logging.Logger,
    stop_event: threading.Event | None = None,
) -> None:
    """Block watching `input_dir` until Ctrl+C or `stop_event` is set."""
    handler = _VideoArrivalHandler(logger, on_video_ready, stable_seconds)
    observer = Observer()
    observer.schedule(handler, str(input_dir), recursive=False)
    observer.start()
    logger.info("Watching directory: %s", input_dir)
    try:
        while stop_event is None or not stop_event.is_set():
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Stopped by KeyboardInterrupt")
    finally:
        observer.stop()
        observer.join()
