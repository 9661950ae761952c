"""Render a :class:`~playcaster.models.Channel` as a podcast RSS document.

Rendering is deterministic: the same channel state always produces the same
bytes. Nothing here reads the clock; ``lastBuildDate`` comes from the channel.
"""
from __future__ import annotations
from datetime import datetime, timezone
from feedgen.feed import FeedGenerator
from . import __version__
from .errors import IncompleteEpisodeError
from .models import Channel, Episode
from .utils.logging import setup_logging
from .utils.path_utils import enclosure_url

logger = setup_logging(__name__)

ON_INCOMPLETE_CHOICES = ("skip", "error")
CATEGORY = "TV & Film"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def format_duration(seconds: int) -> str:
    """Format seconds as the ``HH:MM:SS`` form iTunes expects."""
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _is_itunes_image(url: str | None) -> bool:
    # iTunes only accepts jpg and png artwork
    return bool(url) and url.endswith((".jpg", ".png"))


def channel_title(channel: Channel) -> str:
    return channel.title or channel.link


def channel_description(channel: Channel) -> str:
    return channel.description or f"Podcast feed for {channel_title(channel)}"


def _build_date(channel: Channel) -> datetime:
    if channel.last_build_date:
        return channel.last_build_date
    if channel.episodes:
        return max(e.published for e in channel.episodes)
    return EPOCH


def _add_episode(fg: FeedGenerator, channel: Channel, episode: Episode) -> None:
    fe = fg.add_entry(order="append")
    fe.guid(episode.id, permalink=False)
    fe.title(episode.title)
    if episode.link:
        fe.link(href=episode.link)
    if episode.description:
        fe.description(episode.description)
    fe.pubDate(episode.published)
    fe.enclosure(
        enclosure_url(channel.base_url, episode.media_path),
        str(episode.enclosure_length),
        episode.enclosure_type,
    )
    fe.podcast.itunes_author(channel_title(channel))
    fe.podcast.itunes_subtitle(episode.title)
    if episode.description:
        fe.podcast.itunes_summary(episode.description)
    if _is_itunes_image(episode.thumbnail):
        fe.podcast.itunes_image(episode.thumbnail)
    fe.podcast.itunes_duration(format_duration(episode.duration))
    fe.podcast.itunes_explicit("no")


def render_feed(
    channel: Channel, pretty: bool = True, on_incomplete: str = "skip"
) -> bytes:
    """Render ``channel`` to RSS bytes.

    Episodes are emitted in channel order. An episode without enclosure
    metadata raises :class:`IncompleteEpisodeError` when ``on_incomplete`` is
    ``"error"``; with ``"skip"`` it is left out of this rendering only.
    """
    if on_incomplete not in ON_INCOMPLETE_CHOICES:
        raise ValueError(f"on_incomplete must be one of {ON_INCOMPLETE_CHOICES}")

    fg = FeedGenerator()
    fg.load_extension("podcast")
    fg.title(channel_title(channel))
    fg.link(href=channel.link, rel="alternate")
    fg.description(channel_description(channel))
    fg.generator(f"playcaster {__version__}")
    fg.lastBuildDate(_build_date(channel))

    fg.podcast.itunes_author(channel_title(channel))
    fg.podcast.itunes_subtitle(channel_title(channel))
    fg.podcast.itunes_summary(channel_description(channel))
    fg.podcast.itunes_explicit("no")
    fg.podcast.itunes_category({"cat": CATEGORY})
    fg.podcast.itunes_block(True)

    for episode in channel.episodes:
        missing = episode.missing_enclosure_fields()
        if missing:
            if on_incomplete == "error":
                raise IncompleteEpisodeError(episode.id, missing)
            logger.warning(
                f"Leaving {episode.id} out of the feed; missing {', '.join(missing)}"
            )
            continue
        _add_episode(fg, channel, episode)

    return fg.rss_str(pretty=pretty)
