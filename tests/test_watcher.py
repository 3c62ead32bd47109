from __future__ import annotations

import logging
import threading
import types
from pathlib import Path

import pytest

import dronedetect.watcher as watcher


class _SyncThread:
    def __init__(self, target=None, name=None, daemon=None):
        self.target = target
        self.name = name

    def start(self):
        if self.target:
            self.target()


def test_handler_plays_created_and_moved_videos(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr("dronedetect.watcher.threading.Thread", _SyncThread)
    monkeypatch.setattr("dronedetect.watcher.wait_until_stable", lambda p, s: True)

    hits: list[Path] = []
    h = watcher._VideoArrivalHandler(logging.getLogger("test"), hits.append, stable_seconds=0.0)

    p1 = tmp_path / "flight.mp4"
    p2 = tmp_path / "approach.mkv"
    h.on_created(types.SimpleNamespace(is_directory=False, src_path=str(p1)))
    h.on_moved(types.SimpleNamespace(is_directory=False, dest_path=str(p2)))
    # Not a video, and a directory
    h.on_created(types.SimpleNamespace(is_directory=False, src_path=str(tmp_path / "notes.txt")))
    h.on_created(types.SimpleNamespace(is_directory=True, src_path=str(tmp_path / "sub.mp4")))

    assert hits == [p1, p2]


def test_handler_ignores_duplicate_while_pending(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    threads: list[object] = []

    class _Deferred:
        def __init__(self, target=None, name=None, daemon=None):
            self.target = target
            threads.append(self)

        def start(self):
            pass

    monkeypatch.setattr("dronedetect.watcher.threading.Thread", _Deferred)
    monkeypatch.setattr("dronedetect.watcher.wait_until_stable", lambda p, s: True)

    hits: list[Path] = []
    h = watcher._VideoArrivalHandler(logging.getLogger("test"), hits.append, stable_seconds=0.0)

    p = tmp_path / "dup.mp4"
    h._schedule(p)
    h._schedule(p)
    assert len(threads) == 1

    threads[0].target()
    assert hits == [p]

    # Once handled, the same file may arrive again
    h._schedule(p)
    assert len(threads) == 2


def test_handler_skips_unstable_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr("dronedetect.watcher.threading.Thread", _SyncThread)
    monkeypatch.setattr("dronedetect.watcher.wait_until_stable", lambda p, s: False)

    hits: list[Path] = []
    h = watcher._VideoArrivalHandler(logging.getLogger("test"), hits.append, stable_seconds=0.0)
    h._schedule(tmp_path / "partial.mp4")
    assert hits == []
    assert h._pending == set()


class _Obs:
    instances: list["_Obs"] = []

    def __init__(self):
        _Obs.instances.append(self)
        self.scheduled = []
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self):
        self.joined = True


def test_watch_directory_keyboardinterrupt(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    _Obs.instances.clear()
    monkeypatch.setattr("dronedetect.watcher.Observer", _Obs)

    def _sleep(_):
        raise KeyboardInterrupt()

    monkeypatch.setattr("dronedetect.watcher.time.sleep", _sleep)

    watcher.watch_directory(tmp_path, lambda p: None, stable_seconds=0.1, logger=logging.getLogger("test"))

    obs = _Obs.instances[0]
    assert obs.started and obs.stopped and obs.joined
    assert obs.scheduled[0][1] == str(tmp_path)
    assert obs.scheduled[0][2] is False


def test_watch_directory_returns_when_stop_event_set(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    _Obs.instances.clear()
    monkeypatch.setattr("dronedetect.watcher.Observer", _Obs)
    stop = threading.Event()
    monkeypatch.setattr("dronedetect.watcher.time.sleep", lambda _s: stop.set())

    watcher.watch_directory(
        tmp_path, lambda p: None, stable_seconds=0.1, logger=logging.getLogger("test"), stop_event=stop
    )

    assert _Obs.instances[0].stopped is True
