__version__ = "0.4.0"

from .config import Config
from .errors import (
    PlaycasterError,
    ConfigError,
    MissingPlaylistURLError,
    ExtractionError,
    DegeneratePlaylistError,
    FeedError,
    MalformedFeedError,
    IncompleteEpisodeError,
    DownloadError,
    EmptyExtractionWarning,
)
from .models import PlaylistEntry, Playlist, Episode, Channel
from .ytdlp_integration.extractor import PlaylistExtractor
from .ytdlp_integration.downloader import MediaDownloader
from .generator import render_feed
from .feed import load, save
from .sync import SyncEngine, MergeResult
from .orchestrator import Orchestrator, SyncReport


__all__ = [
    "Config",
    "PlaycasterError",
    "ConfigError",
    "MissingPlaylistURLError",
    "ExtractionError",
    "DegeneratePlaylistError",
    "FeedError",
    "MalformedFeedError",
    "IncompleteEpisodeError",
    "DownloadError",
    "EmptyExtractionWarning",
    "PlaylistEntry",
    "Playlist",
    "Episode",
    "Channel",
    "PlaylistExtractor",
    "MediaDownloader",
    "render_feed",
    "load",
    "save",
    "SyncEngine",
    "MergeResult",
    "Orchestrator",
    "SyncReport",
]
