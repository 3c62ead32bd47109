from __future__ import annotations

import argparse
from pathlib import Path

from .models import Delegate, DetectorModel


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dronedetect",
        description="Detects drones in video files and replays the results in step with playback",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--video", type=Path, help="Play a single video file")
    source.add_argument("--input", type=Path, help="Watch a directory for new videos")
    parser.add_argument("--output", type=Path, required=False, help="Output directory")
    parser.add_argument(
        "--model",
        type=str.upper,
        choices=[m.value for m in DetectorModel],
        help="Detection model (overrides .env)",
    )
    parser.add_argument(
        "--delegate",
        type=str.upper,
        choices=[d.value for d in Delegate],
        help="Inference delegate (overrides .env)",
    )
    parser.add_argument("--threshold", type=float, help="Score threshold in [0, 0.8]")
    parser.add_argument("--max-results", type=int, help="Maximum boxes per frame in [1, 10]")
    parser.add_argument(
        "--interval-ms",
        type=int,
        help="Sampling interval in milliseconds (default 300)",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
