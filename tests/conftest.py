from __future__ import annotations
import os
import tempfile
from datetime import datetime, timezone

import pytest

# Keep log and config files out of the real home directory. This has to
# happen before playcaster is imported, since loggers are set up at import.
_SANDBOX = tempfile.mkdtemp(prefix="playcaster-tests-")
os.environ.setdefault("PLAYCASTER_CACHE_DIR", os.path.join(_SANDBOX, "cache"))
os.environ.setdefault("PLAYCASTER_CONFIG_DIR", os.path.join(_SANDBOX, "config"))

from playcaster.models import Channel, Episode, Playlist, PlaylistEntry  # noqa: E402

BASE_URL = "https://pods.example.com"
PLAYLIST_URL = "https://www.youtube.com/playlist?list=PL123"
NOW = datetime(2024, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


def make_entry(entry_id: str, duration: int = 600, **kwargs) -> PlaylistEntry:
    return PlaylistEntry(
        id=entry_id,
        title=kwargs.pop("title", f"Video {entry_id}"),
        description=kwargs.pop("description", f"About {entry_id}"),
        duration=duration,
        thumbnail=kwargs.pop("thumbnail", f"https://i.ytimg.com/vi/{entry_id}/maxresdefault.jpg"),
        url=kwargs.pop("url", f"https://www.youtube.com/watch?v={entry_id}"),
        **kwargs,
    )


def make_episode(episode_id: str, published: datetime, complete: bool = True) -> Episode:
    episode = Episode(
        id=episode_id,
        title=f"Video {episode_id}",
        published=published,
        description=f"About {episode_id}",
        duration=600,
        link=f"https://www.youtube.com/watch?v={episode_id}",
    )
    if complete:
        episode.media_path = f"news/{episode_id}.mp4"
        episode.enclosure_length = 1024
        episode.enclosure_type = "video/mp4"
    return episode


class FakeExtractor:
    def __init__(self, entries, title="Test Playlist"):
        self.playlist = Playlist(title=title, url=PLAYLIST_URL, entries=list(entries))
        self.calls = 0

    def extract(self) -> Playlist:
        self.calls += 1
        return self.playlist


@pytest.fixture
def empty_channel() -> Channel:
    return Channel(title=None, link=PLAYLIST_URL, base_url=BASE_URL)
