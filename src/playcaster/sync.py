"""Merge freshly enumerated playlist entries into a channel.

Existing episodes are never re-identified or re-dated. Entries the channel
has not seen become new episodes stamped with the invocation time and are
placed ahead of everything already published, in the order the playlist
listed them.
"""
from __future__ import annotations
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Protocol
from .errors import DegeneratePlaylistError, EmptyExtractionWarning
from .models import Channel, Episode, Playlist, PlaylistEntry
from .utils.logging import setup_logging

logger = setup_logging(__name__)


class Extractor(Protocol):
    def extract(self) -> Playlist: ...


@dataclass(slots=True)
class MergeResult:
    new: List[Episode] = field(default_factory=list)
    pruned: List[Episode] = field(default_factory=list)
    listed: List[str] = field(default_factory=list)

    @property
    def needs_media(self) -> list[str]:
        return [e.id for e in self.new]

    @property
    def changed(self) -> bool:
        return bool(self.new or self.pruned)


def invocation_time(now: datetime | None = None) -> datetime:
    """Normalize ``now`` to an aware UTC datetime with whole seconds.

    RSS dates carry no sub-second part, so anything finer would not survive
    a save/load round trip.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).replace(microsecond=0)


def validate_entries(entries: list[PlaylistEntry]) -> None:
    if entries and all(e.duration == 0 for e in entries):
        raise DegeneratePlaylistError(
            f"All {len(entries)} entries have a zero duration; this looks like a "
            "channel's tab listing. Point at a specific tab or playlist instead."
        )


class SyncEngine:
    def __init__(self, keep: int | None = None):
        if keep is not None and keep < 1:
            raise ValueError("keep must be a positive integer")
        self.keep = keep

    def merge(
        self, channel: Channel, entries: Iterable[PlaylistEntry], now: datetime
    ) -> MergeResult:
        entries = list(entries)
        if not entries:
            msg = f"No entries returned for {channel.link}; leaving the feed unchanged."
            logger.warning(msg)
            warnings.warn(msg, EmptyExtractionWarning, stacklevel=2)
            return MergeResult()

        now = invocation_time(now)
        known = {e.id for e in channel.episodes}
        new: list[Episode] = []
        for entry in entries:
            if entry.id in known:
                continue
            known.add(entry.id)
            new.append(Episode.from_entry(entry, published=now))

        if new:
            channel.episodes = new + channel.episodes
            channel.last_build_date = now
            logger.info(f"Discovered {len(new)} new episodes for {channel.link}")
        else:
            logger.info(f"No new episodes for {channel.link}")

        pruned = self._prune(channel, {e.id for e in entries})
        return MergeResult(
            new=new,
            pruned=pruned,
            listed=list(dict.fromkeys(e.id for e in entries)),
        )

    def _prune(self, channel: Channel, current_ids: set[str]) -> list[Episode]:
        if self.keep is None or len(channel.episodes) <= self.keep:
            return []

        excess = len(channel.episodes) - self.keep
        pruned: list[Episode] = []
        # Oldest first; anything still listed upstream stays
        for episode in reversed(channel.episodes):
            if len(pruned) == excess:
                break
            if episode.id not in current_ids:
                pruned.append(episode)

        dropped = {e.id for e in pruned}
        channel.episodes = [e for e in channel.episodes if e.id not in dropped]
        for episode in pruned:
            logger.info(f"Pruned {episode.id} ({episode.title}) beyond keep={self.keep}")
        return pruned

    def sync(self, channel: Channel, extractor: Extractor, now: datetime) -> MergeResult:
        playlist = extractor.extract()
        validate_entries(playlist.entries)
        if channel.title is None and playlist.title:
            channel.title = playlist.title
        return self.merge(channel, playlist.entries, now)
