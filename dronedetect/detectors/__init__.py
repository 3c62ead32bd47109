from .base import ObjectDetector
from .factory import create_detector

__all__ = [
    "ObjectDetector",
    "create_detector",
]
