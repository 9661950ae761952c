from __future__ import annotations
from pathlib import Path
from json import load, dump
from os import getenv

DEFAULT_FORMAT = (
    "bestvideo[ext=mp4][vcodec^=avc1]+bestaudio[ext=m4a]"
    "/best[ext=mp4][vcodec^=avc1]/best[ext=mp4]/best"
)


def config_dir() -> Path:
    override = getenv("PLAYCASTER_CONFIG_DIR")
    return Path(override) if override else Path.home() / ".config" / "playcaster"


class Config:
    def __init__(self, directory: Path | None = None) -> None:
        self.config_dir = directory or config_dir()
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.default_config = {
            "limit": 30,  # passed to yt-dlp as --playlist-end
            "keep": None,  # null keeps every episode ever published
            "workers": 1,
            "format": DEFAULT_FORMAT,
            "pretty": True,
            "on_incomplete": "skip",  # skip|error
            "download_attempts": 3,
            "extract_timeout": 600,
            "downloader": getenv("PLAYCASTER_DOWNLOADER", "yt-dlp"),
        }
        self.data = self.load()

    def load(self) -> dict:
        if self.config_file.exists():
            with open(self.config_file, "r", encoding="utf-8") as f:
                stored = load(f)
            # Keys added in newer versions fall back to their defaults
            return {**self.default_config, **stored}
        else:
            self.save(self.default_config)
            return dict(self.default_config)

    def save(self, data: dict) -> None:
        with open(self.config_file, "w", encoding="utf-8") as f:
            dump(data, f, indent=4)
