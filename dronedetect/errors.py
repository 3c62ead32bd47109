from __future__ import annotations


class DroneDetectError(Exception):
    """Base class for errors raised by dronedetect."""


class ConfigurationError(DroneDetectError, ValueError):
    """Invalid interval or detection parameter; raised before any worker starts."""


class VideoUnreadable(DroneDetectError, RuntimeError):
    """The video source cannot be opened or decoded at all."""


class PlayerPreparationFailed(DroneDetectError, RuntimeError):
    """The player could not prepare the source for playback."""


class FrameDetectionFailed(DroneDetectError):
    """
    Detection failed for a single sample. Recovered locally by substituting an
    empty result; only ever logged.
    """

    def __init__(self, timestamp_ms: int, reason: str) -> None:
        super().__init__(f"Detection failed at {timestamp_ms} ms: {reason}")
        self.timestamp_ms = timestamp_ms
        self.reason = reason
