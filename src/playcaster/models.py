from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List


@dataclass(slots=True)
class PlaylistEntry:
    id: str
    title: str
    description: str | None = None
    upload_date: datetime | None = None
    duration: int = 0
    thumbnail: str | None = None
    url: str | None = None


@dataclass(slots=True)
class Playlist:
    title: str | None
    url: str | None
    entries: List[PlaylistEntry] = field(default_factory=list)

    def __iter__(self) -> Iterator[PlaylistEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(slots=True)
class Episode:
    id: str
    title: str
    published: datetime
    description: str | None = None
    duration: int = 0
    link: str | None = None
    thumbnail: str | None = None
    media_path: str | None = None
    enclosure_length: int | None = None
    enclosure_type: str | None = None

    @classmethod
    def from_entry(cls, entry: PlaylistEntry, published: datetime) -> Episode:
        return cls(
            id=entry.id,
            title=entry.title,
            published=published,
            description=entry.description,
            duration=entry.duration,
            link=entry.url,
            thumbnail=entry.thumbnail,
        )

    def missing_enclosure_fields(self) -> list[str]:
        missing = []
        if not self.media_path:
            missing.append("media_path")
        if self.enclosure_length is None:
            missing.append("enclosure_length")
        if not self.enclosure_type:
            missing.append("enclosure_type")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_enclosure_fields()


@dataclass(slots=True)
class Channel:
    title: str | None
    link: str
    base_url: str
    description: str | None = None
    last_build_date: datetime | None = None
    episodes: List[Episode] = field(default_factory=list)

    def episode_ids(self) -> list[str]:
        return [e.id for e in self.episodes]
