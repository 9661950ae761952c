from __future__ import annotations
from argparse import ArgumentTypeError
from shutil import which
from urllib.parse import urlsplit
from .logging import setup_logging

logger = setup_logging(__name__)


def positive_int(value: str) -> int:
    try:
        iv = int(value)
        if iv <= 0:
            raise ArgumentTypeError(f"{value!r} is not a positive integer")
        return iv
    except ValueError:
        raise ArgumentTypeError(f"{value!r} is not a positive integer")


def ensure_dependencies(executable: str = "yt-dlp") -> None:
    missing: list[str] = []
    if which(executable) is None:
        missing.append(executable)
    if which("ffmpeg") is None:
        missing.append("ffmpeg")
    if missing:
        logger.error(
            "Missing dependencies: "
            + ", ".join(missing)
            + ". Install them and try again."
        )
        raise SystemExit(1)


def looks_like_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def http_url(value: str) -> str:
    if not looks_like_url(value):
        raise ArgumentTypeError(f"{value!r} is not an http(s) URL")
    return value
