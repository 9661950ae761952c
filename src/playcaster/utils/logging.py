from __future__ import annotations
import logging
from os import getenv
from pathlib import Path


def log_dir() -> Path:
    override = getenv("PLAYCASTER_CACHE_DIR")
    return Path(override) if override else Path.home() / ".cache" / "playcaster"


def setup_logging(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return logger

    # Ensure the cache directory exists for the log file
    directory = log_dir()
    directory.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(directory / "playcaster.log")
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger
