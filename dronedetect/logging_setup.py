from __future__ import annotations

import logging
from logging import Logger
from pathlib import Path

# Third-party loggers that are chatty at INFO during model load/inference
_QUIET_LOGGERS = ("ultralytics", "watchdog")


def setup_logging(output_dir: Path, level: str = "INFO") -> Logger:
    """
    Configure the `dronedetect` logger with a console handler and a
    `dronedetect.log` file handler in `output_dir`. Safe to call repeatedly.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("dronedetect")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent duplicate handlers on repeated setup calls
    if logger.handlers:
        return logger

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    logfile = logging.FileHandler(output_dir / "dronedetect.log", encoding="utf-8")
    logfile.setFormatter(formatter)
    logger.addHandler(logfile)

    return logger
