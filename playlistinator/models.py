from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True, order=True)
class TrackKey:
    artist_name: str
    track_title: str
    album_name: str = ""


@dataclass(frozen=True)
class Play:
    artist_name: str
    track_title: str
    album_name: str = ""  # Last.fm reports an empty album for some scrobbles

    @property
    def key(self) -> TrackKey:
        return TrackKey(self.artist_name, self.track_title, self.album_name)


@dataclass(frozen=True)
class TrackTally:
    key: TrackKey
    count: int

    @property
    def artist_name(self) -> str:
        return self.key.artist_name

    @property
    def track_title(self) -> str:
        return self.key.track_title

    @property
    def album_name(self) -> str:
        return self.key.album_name


@dataclass(frozen=True)
class Resolution:
    tally: TrackTally
    uri: Optional[str] = None  # None when search found nothing

    @property
    def resolved(self) -> bool:
        return self.uri is not None


@dataclass
class Playlist:
    id: str
    name: str
    description: str = ""
    uris: List[str] = field(default_factory=list)
