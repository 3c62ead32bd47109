from __future__ import annotations

import contextlib
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

from .errors import ConfigurationError
from .models import Delegate, DetectionParams, DetectorModel

THRESHOLD_RANGE = (0.0, 0.8)
MAX_RESULTS_RANGE = (1, 10)


@dataclass
class AppConfig:
    input_dir: Path
    output_dir: Path
    video: Path | None = None

    model: DetectorModel = DetectorModel.DRONE_MOBILENET_V2
    delegate: Delegate = Delegate.CPU
    threshold: float = 0.4
    max_results: int = 5

    # Sampling interval for detection and for replaying results
    interval_ms: int = 300

    # Weights are looked up as <model_dir>/<model name>.pt unless model_path is set
    model_dir: Path = Path("models")
    model_path: str = ""

    file_stability_seconds: float = 3.0
    write_jsonl: bool = True

    log_level: str = "INFO"

    def detection_params(self) -> DetectionParams:
        return DetectionParams(
            threshold=self.threshold,
            max_results=self.max_results,
            delegate=self.delegate,
            model=self.model,
        )

    def resolve_model_path(self) -> Path:
        if self.model_path:
            return Path(self.model_path)
        return self.model_dir / self.model.weights_filename


def _get_env_from_file(env_path: Path) -> dict[str, str]:
    if env_path.exists():
        return {k: v for k, v in dotenv_values(env_path).items() if k and v}
    return {}


def _coerce_float(value: str | None, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _coerce_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_model(value: str | None, default: DetectorModel) -> DetectorModel:
    if value is None:
        return default
    try:
        return DetectorModel(value.strip().upper())
    except ValueError:
        return default


def _coerce_delegate(value: str | None, default: Delegate) -> Delegate:
    if value is None:
        return default
    try:
        return Delegate(value.strip().upper())
    except ValueError:
        return default


def load_config(
    cli_input: Path | None,
    cli_output: Path | None,
    cli_video: Path | None = None,
    *,
    model: str | None = None,
    delegate: str | None = None,
    threshold: float | None = None,
    max_results: int | None = None,
    interval_ms: int | None = None,
) -> AppConfig:
    """
    Load configuration with the following priority order:
    1) CLI arguments
    2) .env in the input directory (or next to the video)
    3) Process environment (INPUT_DIR, OUTPUT_DIR)
    4) Defaults
    """

    # 1) Base: input dir from CLI, the video's folder, or environment
    if cli_input is not None:
        input_dir = cli_input
    elif cli_video is not None:
        input_dir = cli_video.parent
    else:
        input_dir = Path(os.getenv("INPUT_DIR", ".")).resolve()
    env = _get_env_from_file(input_dir / ".env")

    # 2) Output: CLI > .env > default: ./output next to input
    output_dir: Path
    if cli_output is not None:
        output_dir = cli_output
    else:
        env_out = env.get("OUTPUT_DIR")
        if env_out is not None:
            output_dir = Path(env_out)
        else:
            default_output = input_dir.parent / "output"
            output_dir = Path(os.getenv("OUTPUT_DIR", str(default_output))).resolve()

    # 3) Detection options: CLI > .env > default
    model_sel = _coerce_model(model or env.get("MODEL"), DetectorModel.DRONE_MOBILENET_V2)
    delegate_sel = _coerce_delegate(delegate or env.get("DELEGATE"), Delegate.CPU)
    threshold_val = (
        threshold if threshold is not None else _coerce_float(env.get("THRESHOLD"), 0.4)
    )
    max_results_val = (
        max_results if max_results is not None else _coerce_int(env.get("MAX_RESULTS"), 5)
    )
    interval_val = (
        interval_ms if interval_ms is not None else _coerce_int(env.get("INTERVAL_MS"), 300)
    )

    model_dir = Path(env.get("MODEL_DIR", "models"))
    model_path = env.get("MODEL_PATH", "")

    file_stability_seconds = _coerce_float(env.get("FILE_STABILITY_SECONDS"), 3.0)
    write_jsonl = _coerce_bool(env.get("WRITE_JSONL"), True)
    log_level = env.get("LOG_LEVEL", "INFO").upper()

    # Ensure the output directory exists
    with contextlib.suppress(Exception):
        output_dir.mkdir(parents=True, exist_ok=True)

    return AppConfig(
        input_dir=input_dir,
        output_dir=output_dir,
        video=cli_video,
        model=model_sel,
        delegate=delegate_sel,
        threshold=threshold_val,
        max_results=max_results_val,
        interval_ms=interval_val,
        model_dir=model_dir,
        model_path=model_path,
        file_stability_seconds=file_stability_seconds,
        write_jsonl=write_jsonl,
        log_level=log_level,
    )


def validate_config(cfg: AppConfig) -> None:
    """Raise `ConfigurationError` for values the detection session cannot run with."""
    if cfg.interval_ms <= 0:
        raise ConfigurationError(f"INTERVAL_MS must be positive, got {cfg.interval_ms}")
    lo, hi = THRESHOLD_RANGE
    if not lo <= cfg.threshold <= hi:
        raise ConfigurationError(f"THRESHOLD must be within [{lo}, {hi}], got {cfg.threshold}")
    lo_n, hi_n = MAX_RESULTS_RANGE
    if not lo_n <= cfg.max_results <= hi_n:
        raise ConfigurationError(
            f"MAX_RESULTS must be within [{lo_n}, {hi_n}], got {cfg.max_results}"
        )
