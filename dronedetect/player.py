from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

import numpy as np

from .errors import PlayerPreparationFailed

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[int, int], None]
ErrorCallback = Callable[[Exception], None]


class Player(ABC):
    """
    Video playback capability. Preparation is asynchronous and signalled only
    on completion; no playback position is exposed.
    """

    @abstractmethod
    def load(self, source: Path) -> None:
        """Set the data source."""

    @abstractmethod
    def prepare_async(self, on_ready: ReadyCallback, on_error: ErrorCallback) -> None:
        """
        Prepare the source in the background, then call `on_ready(width, height)`
        or `on_error(exc)` from the player's own context.
        """

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def release(self) -> None: ...

    @property
    @abstractmethod
    def natural_size(self) -> tuple[int, int]: ...


class OpenCVPlayer(Player):
    """
    Headless player on top of OpenCV. Frames are decoded and paced at the
    file's native fps on a playback thread and handed to `on_frame`.
    """

    def __init__(self, on_frame: Callable[[np.ndarray], None] | None = None) -> None:
        self.on_frame = on_frame
        self._source: Path | None = None
        self._cap = None
        self._fps = 25.0
        self._size = (1, 1)  # unknown until prepared
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._play_thread: threading.Thread | None = None
        self._released = False

    @property
    def natural_size(self) -> tuple[int, int]:
        return self._size

    @property
    def is_playing(self) -> bool:
        t = self._play_thread
        return t is not None and t.is_alive()

    def load(self, source: Path) -> None:
        with self._lock:
            self._source = source
            self._released = False

    def prepare_async(self, on_ready: ReadyCallback, on_error: ErrorCallback) -> None:
        if self._source is None:
            raise PlayerPreparationFailed("No source loaded")

        def worker() -> None:
            try:
                width, height = self._prepare()
            except Exception as e:
                err = e if isinstance(e, PlayerPreparationFailed) else PlayerPreparationFailed(str(e))
                logger.warning("Player preparation failed: %s", err)
                on_error(err)
                return
            on_ready(width, height)

        threading.Thread(target=worker, name="dronedetect-player-prepare", daemon=True).start()

    def _prepare(self) -> tuple[int, int]:
        import cv2  # type: ignore

        cap = cv2.VideoCapture(str(self._source))
        if not cap.isOpened():
            raise PlayerPreparationFailed(f"Cannot open video for playback: {self._source}")
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        if width <= 0 or height <= 0:
            cap.release()
            raise PlayerPreparationFailed(f"Video has no decodable picture: {self._source}")
        with self._lock:
            if self._released:
                cap.release()
                raise PlayerPreparationFailed("Player was released during preparation")
            self._cap = cap
            self._fps = float(cap.get(cv2.CAP_PROP_FPS) or 25.0)
            self._size = (width, height)
        logger.info("Player prepared: %s %dx%d @ %.2f fps", self._source, width, height, self._fps)
        return width, height

    def start(self) -> None:
        with self._lock:
            if self._cap is None or self.is_playing:
                return
            self._stop.clear()
            self._play_thread = threading.Thread(
                target=self._play, name="dronedetect-player", daemon=True
            )
            self._play_thread.start()

    def _play(self) -> None:
        frame_period = 1.0 / self._fps if self._fps > 0 else 0.04
        next_due = time.monotonic()
        while not self._stop.is_set():
            with self._lock:
                cap = self._cap
                if cap is None:
                    return
                ok, frame = cap.read()
            if not ok:
                logger.info("Playback reached end of stream")
                return
            if self.on_frame is not None:
                self.on_frame(frame)
            next_due += frame_period
            self._stop.wait(max(0.0, next_due - time.monotonic()))

    def stop(self) -> None:
        self._stop.set()
        t = self._play_thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=2.0)
        self._play_thread = None

    def release(self) -> None:
        self.stop()
        with self._lock:
            self._released = True
            if self._cap is not None:
                self._cap.release()
                self._cap = None
