"""
プレイリスト統計の計算（I/O なし）。
エントリ列を 1 回だけ走査して StatisticsSummary を返す。
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from lib.playlist_stats.models import (
    ArtistCount,
    PlaylistEntry,
    SongSnapshot,
    StatisticsSummary,
    YearCount,
)


def _parse_added_at(value: Any) -> Optional[datetime]:
    """ISO8601 (Spotify returns '2023-05-01T12:00:00Z') -> aware datetime, else None."""
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _duration_of(track: Dict[str, Any]) -> Optional[float]:
    d = track.get("duration_ms")
    # bool is an int subclass; treat it as garbage
    if isinstance(d, bool) or not isinstance(d, (int, float)):
        return None
    if isinstance(d, float) and math.isnan(d):
        return None
    return d


def _artist_names(track: Dict[str, Any]) -> List[str]:
    names: List[str] = []
    for a in track.get("artists") or []:
        name = a.get("name") if isinstance(a, dict) else a
        if isinstance(name, str) and name:
            names.append(name)
    return names


def _album_name(track: Dict[str, Any]) -> Optional[str]:
    album = track.get("album")
    if isinstance(album, dict):
        return album.get("name") or None
    if isinstance(album, str):
        return album or None
    return None


def _snapshot(track: Dict[str, Any], artists: List[str], added_at: Optional[str] = None,
              duration_ms: Optional[float] = None) -> SongSnapshot:
    return SongSnapshot(
        name=track.get("name") or "",
        artists=tuple(artists),
        added_at=added_at,
        duration_ms=duration_ms,
    )


def _ranked(counts: Dict[str, int]) -> List[Tuple[str, int]]:
    # sorted() is stable, so equal counts keep first-seen (insertion) order
    return sorted(counts.items(), key=lambda kv: -kv[1])


def compute_stats(entries: Sequence[Optional[PlaylistEntry]]) -> StatisticsSummary:
    """
    Compute descriptive statistics over playlist entries.

    - null entries / entries without ``track`` are skipped and not counted
    - first song: earliest ``added_at``, first entry wins ties
    - last song: latest ``added_at``, the later entry wins ties
    - shortest / longest: first occurrence wins ties
    - avg_artists_per_song is 0.0 when nothing was counted
    """
    artist_count: Dict[str, int] = {}
    year_artist_count: Dict[int, Dict[str, int]] = {}
    songs_per_year: Dict[int, int] = {}
    artist_set = set()
    album_set = set()
    total_artists = 0
    counted = 0

    first: Optional[Tuple[datetime, SongSnapshot]] = None
    last: Optional[Tuple[datetime, SongSnapshot]] = None
    shortest: Optional[SongSnapshot] = None
    longest: Optional[SongSnapshot] = None

    for item in entries:
        if not item:
            continue
        track = item.get("track")
        if not track:
            continue
        counted += 1

        artists = _artist_names(track)
        for name in artists:
            artist_count[name] = artist_count.get(name, 0) + 1
            artist_set.add(name)

        album = _album_name(track)
        if album:
            album_set.add(album)

        total_artists += len(artists)

        added_raw = item.get("added_at")
        added = _parse_added_at(added_raw)
        if added is not None:
            year = added.year
            songs_per_year[year] = songs_per_year.get(year, 0) + 1
            per_year = year_artist_count.setdefault(year, {})
            for name in artists:
                per_year[name] = per_year.get(name, 0) + 1
            if first is None or added < first[0]:
                first = (added, _snapshot(track, artists, added_at=added_raw))
            if last is None or added >= last[0]:
                last = (added, _snapshot(track, artists, added_at=added_raw))

        duration = _duration_of(track)
        if duration is not None:
            if shortest is None or duration < shortest.duration_ms:
                shortest = _snapshot(track, artists, duration_ms=duration)
            if longest is None or duration > longest.duration_ms:
                longest = _snapshot(track, artists, duration_ms=duration)

    top_artists = tuple(ArtistCount(name, count) for name, count in _ranked(artist_count))

    top_artist_per_year: Dict[int, ArtistCount] = {}
    for year in sorted(year_artist_count):
        ranked = _ranked(year_artist_count[year])
        if ranked:
            name, count = ranked[0]
            top_artist_per_year[year] = ArtistCount(name, count)

    return StatisticsSummary(
        top_artists=top_artists,
        top_artist_per_year=top_artist_per_year,
        songs_per_year=tuple(YearCount(y, songs_per_year[y]) for y in sorted(songs_per_year)),
        first_song=first[1] if first else None,
        last_song=last[1] if last else None,
        avg_artists_per_song=(total_artists / counted) if counted else 0.0,
        unique_artists=len(artist_set),
        unique_albums=len(album_set),
        longest_song=longest,
        shortest_song=shortest,
    )
