"""Single-thread scheduler backing one playback session."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    """Handle for a submitted or periodic task."""

    def __init__(self, fn: Callable[[], None], delay: float | None) -> None:
        self.fn = fn
        self.delay = delay  # None for one-shot tasks
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class SingleThreadScheduler:
    """
    Runs one-shot and fixed-delay tasks on a single dedicated daemon thread, so
    no two tasks of a session ever execute concurrently. A fixed-delay task is
    rescheduled `delay` seconds after the previous run finishes.
    """

    def __init__(
        self,
        name: str = "dronedetect-worker",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()
        self._shutdown = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def submit(self, fn: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(fn, delay=None)
        self._push(task, 0.0)
        return task

    def schedule_with_fixed_delay(
        self,
        fn: Callable[[], None],
        initial_delay: float,
        delay: float,
    ) -> ScheduledTask:
        if delay <= 0:
            raise ValueError(f"delay must be positive, got {delay}")
        task = ScheduledTask(fn, delay=delay)
        self._push(task, max(0.0, initial_delay))
        return task

    def _push(self, task: ScheduledTask, delay: float) -> None:
        with self._cond:
            if self._shutdown:
                raise RuntimeError("Scheduler is shut down")
            heapq.heappush(self._queue, (self._clock() + delay, next(self._seq), task))
            self._cond.notify()

    def _next_task(self) -> ScheduledTask | None:
        with self._cond:
            while True:
                if self._shutdown:
                    return None
                if not self._queue:
                    self._cond.wait()
                    continue
                run_at, _, task = self._queue[0]
                if task.cancelled:
                    heapq.heappop(self._queue)
                    continue
                remaining = run_at - self._clock()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
                heapq.heappop(self._queue)
                return task

    def _run(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            try:
                task.fn()
            except Exception:
                logger.exception("Scheduled task failed; it will not run again")
                task.cancel()
                continue
            if task.delay is not None and not task.cancelled:
                with self._cond:
                    if self._shutdown:
                        return
                    heapq.heappush(
                        self._queue, (self._clock() + task.delay, next(self._seq), task)
                    )
                    self._cond.notify()

    def shutdown(self, wait: bool = False, timeout: float | None = None) -> None:
        """
        Drop queued tasks and stop the worker. A task already running finishes.
        Waiting is skipped when called from the worker thread itself.
        """
        with self._cond:
            self._shutdown = True
            for _, _, task in self._queue:
                task.cancel()
            self._queue.clear()
            self._cond.notify_all()
        if wait and threading.current_thread() is not self._thread:
            self._thread.join(timeout)
