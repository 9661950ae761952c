"""Exceptions and warnings raised while syncing a playlist feed."""


class PlaycasterError(Exception):
    """Base exception for all playcaster errors."""

    pass


class ConfigError(PlaycasterError):
    """Invalid or missing configuration."""

    pass


class MissingPlaylistURLError(ConfigError):
    """No playlist URL given and none recoverable from an existing feed."""

    pass


class ExtractionError(PlaycasterError):
    """The extraction tool failed or printed something unusable."""

    pass


class DegeneratePlaylistError(ExtractionError):
    """Every entry has a zero duration.

    This is what a channel URL without a tab (``/videos``, ``/streams``)
    looks like: the entries are the tabs themselves, not videos.
    """

    pass


class FeedError(PlaycasterError):
    """Feed reading or rendering errors."""

    pass


class MalformedFeedError(FeedError):
    """An existing feed file could not be parsed."""

    pass


class IncompleteEpisodeError(FeedError):
    """An episode lacks the enclosure metadata an RSS item needs."""

    def __init__(self, episode_id: str, missing: list[str]):
        self.episode_id = episode_id
        self.missing = missing
        super().__init__(
            f"Episode {episode_id} is missing enclosure fields: {', '.join(missing)}"
        )


class DownloadError(PlaycasterError):
    """A single media download failed."""

    pass


class EmptyExtractionWarning(UserWarning):
    """The playlist returned no entries; the feed was left unchanged."""

    pass
