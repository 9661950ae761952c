from __future__ import annotations
from pathlib import Path
from urllib.parse import urlsplit


def media_dir_for(feed_file: Path) -> Path:
    """Media for ``feeds/news.rss`` lives in ``feeds/news/``."""
    return feed_file.parent / feed_file.stem


def enclosure_url(base_url: str, media_path: str) -> str:
    return f"{base_url.rstrip('/')}/{media_path.lstrip('/')}"


def media_path_from_url(url: str, base_url: str | None) -> str:
    """Recover the feed-relative media path from an enclosure URL.

    Falls back to the last two path segments (``<feed>/<file>``) when the
    URL was published under a different base.
    """
    if base_url:
        prefix = base_url.rstrip("/") + "/"
        if url.startswith(prefix):
            return url[len(prefix):]
    parts = [p for p in urlsplit(url).path.split("/") if p]
    return "/".join(parts[-2:])
