"""Loading and saving the persisted feed.

The feed file is the only state kept between runs: episodes, their GUIDs and
publish dates are read back from the RSS document written by the last run.
"""
from __future__ import annotations
import os
import tempfile
from datetime import timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import TextIO
from lxml import etree
from .errors import MalformedFeedError, MissingPlaylistURLError, ConfigError
from .generator import render_feed
from .models import Channel, Episode
from .utils.logging import setup_logging
from .utils.path_utils import media_path_from_url

logger = setup_logging(__name__)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"


def parse_rfc2822(value: str):
    dt = parsedate_to_datetime(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_duration(value: str | None) -> int:
    """Accept ``HH:MM:SS``, ``MM:SS`` or plain seconds."""
    if not value:
        return 0
    try:
        seconds = 0
        for part in value.strip().split(":"):
            seconds = seconds * 60 + int(part)
        return seconds
    except ValueError:
        logger.warning(f"Ignoring unparseable duration: {value!r}")
        return 0


def _text(element, tag: str) -> str | None:
    value = element.findtext(tag)
    return value if value else None


def _parse_episode(item, base_url: str | None) -> Episode:
    guid = (item.findtext("guid") or "").strip()
    if not guid:
        raise MalformedFeedError("Feed item without a <guid>")

    pub_date = item.findtext("pubDate")
    if not pub_date:
        raise MalformedFeedError(f"Feed item {guid} has no <pubDate>")
    try:
        published = parse_rfc2822(pub_date)
    except (TypeError, ValueError) as e:
        raise MalformedFeedError(f"Feed item {guid} has a bad <pubDate>: {e}")

    episode = Episode(
        id=guid,
        title=_text(item, "title") or guid,
        published=published,
        description=_text(item, "description"),
        duration=parse_duration(item.findtext(f"{{{ITUNES_NS}}}duration")),
        link=_text(item, "link"),
    )
    image = item.find(f"{{{ITUNES_NS}}}image")
    if image is not None:
        episode.thumbnail = image.get("href")

    enclosure = item.find("enclosure")
    if enclosure is not None and enclosure.get("url"):
        episode.media_path = media_path_from_url(enclosure.get("url"), base_url)
        episode.enclosure_type = enclosure.get("type") or None
        try:
            episode.enclosure_length = int(enclosure.get("length", ""))
        except ValueError:
            episode.enclosure_length = None
    return episode


def _infer_base_url(channel_el) -> str | None:
    for enclosure in channel_el.iter("enclosure"):
        url = enclosure.get("url") or ""
        media_path = media_path_from_url(url, None)
        if media_path and url.endswith(media_path):
            return url[: -len(media_path)].rstrip("/")
    return None


def load(
    path: Path, playlist_url: str | None = None, base_url: str | None = None
) -> Channel:
    """Read the feed at ``path`` into a :class:`Channel`.

    A missing file yields an empty channel, which needs both ``playlist_url``
    and ``base_url``. An unreadable file raises :class:`MalformedFeedError`.
    """
    path = Path(path)
    if not path.exists():
        if not playlist_url:
            raise MissingPlaylistURLError(
                f"{path} does not exist yet; a playlist URL is required to create it"
            )
        if not base_url:
            raise ConfigError("A base URL is required to create a new feed")
        logger.info(f"No feed at {path}; starting a new channel")
        return Channel(title=None, link=playlist_url, base_url=base_url)

    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.parse(str(path), parser).getroot()
    except (etree.XMLSyntaxError, OSError) as e:
        raise MalformedFeedError(f"Cannot parse {path}: {e}")

    channel_el = root.find("channel") if root.tag == "rss" else None
    if channel_el is None:
        raise MalformedFeedError(f"{path} is not an RSS document (no <rss><channel>)")

    base_url = base_url or _infer_base_url(channel_el)
    if not base_url:
        raise ConfigError(f"Cannot infer a base URL from {path}; pass one explicitly")

    link = playlist_url or _text(channel_el, "link")
    if not link:
        raise MissingPlaylistURLError(
            f"{path} has no <link>; a playlist URL is required"
        )

    last_build = channel_el.findtext("lastBuildDate")
    try:
        last_build_date = parse_rfc2822(last_build) if last_build else None
    except (TypeError, ValueError):
        logger.warning(f"Ignoring bad <lastBuildDate> in {path}: {last_build!r}")
        last_build_date = None

    episodes = [_parse_episode(item, base_url) for item in channel_el.findall("item")]
    logger.info(f"Loaded {len(episodes)} episodes from {path}")
    return Channel(
        title=_text(channel_el, "title"),
        link=link,
        base_url=base_url,
        description=_text(channel_el, "description"),
        last_build_date=last_build_date,
        episodes=episodes,
    )


def write_atomic(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` without ever leaving a partial file."""
    path = Path(path)
    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with open(temp_fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        Path(temp_path).unlink(missing_ok=True)
        raise


def save(
    channel: Channel,
    destination: Path | str | TextIO,
    pretty: bool = True,
    on_incomplete: str = "skip",
) -> bytes:
    """Render ``channel`` and write it to a path or a text stream.

    Rendering happens before anything is written, so a rendering error
    leaves an existing file untouched.
    """
    data = render_feed(channel, pretty=pretty, on_incomplete=on_incomplete)
    if isinstance(destination, (str, Path)):
        write_atomic(Path(destination), data)
        logger.info(f"Wrote {len(channel.episodes)} episodes to {destination}")
    else:
        destination.write(data.decode("utf-8"))
        destination.flush()
    return data
