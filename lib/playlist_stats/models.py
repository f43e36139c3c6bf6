"""
プレイリスト統計のデータモデル。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TypedDict


class ArtistRef(TypedDict, total=False):
    """Spotify artist object (only the fields we request)."""
    name: str


class AlbumRef(TypedDict, total=False):
    name: str


class TrackPayload(TypedDict, total=False):
    """
    Spotify track object as returned inside a playlist item.

    Fields:
        id: Spotify track id
        name: track title
        artists: list of artist objects, may be empty
        album: album object, may be missing
        duration_ms: length in ms, may be missing or non-numeric
    """
    id: str
    name: str
    artists: List[ArtistRef]
    album: Optional[AlbumRef]
    duration_ms: Any


class PlaylistEntry(TypedDict, total=False):
    """One row of /playlists/{id}/tracks. ``track`` is null for removed tracks."""
    added_at: Optional[str]
    track: Optional[TrackPayload]


@dataclass(frozen=True)
class Credential:
    """Bearer token plus the absolute instant (clock seconds) it expires at."""
    access_token: str
    expires_at: float


@dataclass(frozen=True)
class ArtistCount:
    name: str
    count: int


@dataclass(frozen=True)
class YearCount:
    year: int
    count: int


@dataclass(frozen=True)
class SongSnapshot:
    """A single entry frozen for display (first/last added, longest/shortest)."""
    name: str
    artists: Tuple[str, ...]
    added_at: Optional[str] = None
    duration_ms: Optional[float] = None


@dataclass(frozen=True)
class StatisticsSummary:
    top_artists: Tuple[ArtistCount, ...]
    top_artist_per_year: Dict[int, ArtistCount]
    songs_per_year: Tuple[YearCount, ...]
    first_song: Optional[SongSnapshot]
    last_song: Optional[SongSnapshot]
    avg_artists_per_song: float
    unique_artists: int
    unique_albums: int
    longest_song: Optional[SongSnapshot]
    shortest_song: Optional[SongSnapshot]


@dataclass(frozen=True)
class PlaylistMeta:
    name: str
    description: str
    owner: Optional[str]
    total_tracks: int


@dataclass
class PlaylistOutcome:
    """Per-playlist result. Either ``meta``+``stats`` or ``error`` is set."""
    playlist_id: str
    meta: Optional[PlaylistMeta] = None
    stats: Optional[StatisticsSummary] = None
    error: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.stats is not None


@dataclass
class AggregateResult:
    per_playlist: List[PlaylistOutcome] = field(default_factory=list)
    merged: Optional[StatisticsSummary] = None
