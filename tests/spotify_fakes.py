"""Test doubles for spotipy.Spotify and the credential cache."""
from __future__ import annotations

import threading
from typing import Dict, List, Optional

from spotipy.exceptions import SpotifyException

from lib.playlist_stats import AuthError, Credential


def entry(
    name: str,
    artists: List[str],
    added_at: Optional[str] = "2023-01-01T00:00:00Z",
    album: Optional[str] = "Album",
    duration_ms=200000,
) -> dict:
    return {
        "added_at": added_at,
        "track": {
            "id": name.lower().replace(" ", "-"),
            "name": name,
            "artists": [{"name": a} for a in artists],
            "album": {"name": album} if album else None,
            "duration_ms": duration_ms,
        },
    }


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSpotify:
    """Mimics the three spotipy calls the engine uses: playlist, playlist_items, next."""

    def __init__(
        self,
        pages: Dict[str, List[List[dict]]],
        playlists: Optional[Dict[str, dict]] = None,
        fail_meta: Optional[Dict[str, int]] = None,
        fail_tracks: Optional[Dict[str, int]] = None,
    ):
        self.pages = pages
        self.playlists = playlists or {}
        self.fail_meta = fail_meta or {}
        self.fail_tracks = fail_tracks or {}
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def count(self, method: str, playlist_id: Optional[str] = None) -> int:
        return sum(1 for c in self.calls if c[0] == method and (playlist_id is None or c[1] == playlist_id))

    def playlist(self, playlist_id, fields=None, market=None, additional_types=("track",)):
        self._record("playlist", playlist_id)
        if playlist_id in self.fail_meta:
            status = self.fail_meta[playlist_id]
            raise SpotifyException(status, -1, f"playlist {playlist_id} unavailable", reason="Not Found")
        return self.playlists.get(playlist_id, {
            "name": f"Playlist {playlist_id}",
            "description": "",
            "owner": {"id": "owner-id", "display_name": "Owner"},
            "tracks": {"total": sum(len(p) for p in self.pages.get(playlist_id, []))},
        })

    def _page(self, playlist_id: str, index: int) -> dict:
        pages = self.pages.get(playlist_id, [[]])
        has_next = index + 1 < len(pages)
        return {
            "items": pages[index],
            "next": f"https://api.spotify.com/v1/playlists/{playlist_id}/tracks?page={index + 1}" if has_next else None,
        }

    def playlist_items(self, playlist_id, fields=None, limit=100, offset=0, market=None, additional_types=("track",)):
        self._record("playlist_items", playlist_id)
        if playlist_id in self.fail_tracks:
            status = self.fail_tracks[playlist_id]
            raise SpotifyException(status, -1, f"tracks of {playlist_id} unavailable", reason="Server Error")
        return self._page(playlist_id, 0)

    def next(self, result):
        url = result["next"]
        playlist_id = url.split("/playlists/")[1].split("/")[0]
        index = int(url.rsplit("page=", 1)[1])
        self._record("next", playlist_id)
        return self._page(playlist_id, index)


class LoopingSpotify(FakeSpotify):
    """Always hands back the same `next` URL."""

    def _page(self, playlist_id: str, index: int) -> dict:
        return {"items": [entry(f"Song {index}", ["A"])], "next": "https://api.spotify.com/v1/loop"}

    def next(self, result):
        self._record("next", "loop")
        return self._page("loop", 1)


class EndlessSpotify(FakeSpotify):
    """Every page points at a fresh `next` URL."""

    def _page(self, playlist_id: str, index: int) -> dict:
        return {
            "items": [entry(f"Song {index}", ["A"])],
            "next": f"https://api.spotify.com/v1/playlists/{playlist_id}/tracks?page={index + 1}",
        }


class FakeCredentials:
    def __init__(self, token: str = "token-1", fail: bool = False):
        self.token = token
        self.fail = fail
        self.calls = 0

    async def get_token(self) -> Credential:
        self.calls += 1
        if self.fail:
            raise AuthError("Token request failed (400): invalid_client", status=400)
        return Credential(access_token=self.token, expires_at=float("inf"))
