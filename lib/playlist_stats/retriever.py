"""
プレイリストの全トラック取得（ページング + TTL キャッシュ）。
"""
from __future__ import annotations

import asyncio
import logging
import os
from time import perf_counter
from typing import Any, List, Optional

import requests
from cachetools import TTLCache
from spotipy.exceptions import SpotifyException

from lib.cache_manager import build_track_cache_key, get_track_cache
from lib.playlist_stats.errors import UpstreamError
from lib.playlist_stats.models import PlaylistEntry

logger = logging.getLogger(__name__)

SPOTIFY_PAGE_SIZE = int(os.getenv("SPOTIFY_PAGE_SIZE", "100"))
# Spotify caps playlists at 10k tracks; anything past this is a broken `next` chain
SPOTIFY_MAX_PAGES = int(os.getenv("SPOTIFY_MAX_PAGES", "500"))

# Fetch only the fields the statistics need
TRACK_FIELDS = "items(added_at,track(id,name,duration_ms,artists(name),album(name))),next"


def upstream_error_from_exception(e: Exception, context: str) -> UpstreamError:
    """Wrap a spotipy/requests failure, keeping the upstream payload when there is one."""
    if isinstance(e, UpstreamError):
        return e
    if isinstance(e, SpotifyException):
        status = getattr(e, "http_status", None)
        msg = getattr(e, "msg", str(e))
        reason = getattr(e, "reason", None)
        # reason may be an urllib3 exception object; the payload must stay JSON-safe
        payload = {"status": status, "message": msg, "reason": str(reason) if reason is not None else None}
        return UpstreamError(f"{context} ({status}): {msg}", payload=payload, status=status)
    return UpstreamError(f"{context}: {e}", payload=str(e))


class TrackRetriever:
    """Fetch every entry of a playlist, caching the raw items per playlist id."""

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        page_size: int = SPOTIFY_PAGE_SIZE,
        max_pages: int = SPOTIFY_MAX_PAGES,
    ):
        self.cache = cache if cache is not None else get_track_cache()
        self.page_size = page_size
        self.max_pages = max_pages

    def cached(self, playlist_id: str) -> Optional[List[PlaylistEntry]]:
        items = self.cache.get(build_track_cache_key(playlist_id))
        return list(items) if items is not None else None

    async def get_all_tracks(self, sp: Any, playlist_id: str) -> List[PlaylistEntry]:
        """
        ``sp`` は spotipy.Spotify（またはその互換オブジェクト）。
        キャッシュが生きていればネットワークには出ない。
        """
        cached = self.cached(playlist_id)
        if cached is not None:
            logger.debug(f"[Tracks] cache hit playlist={playlist_id} items={len(cached)}")
            return cached

        t0 = perf_counter()
        items = await asyncio.to_thread(self._fetch_all_pages, sp, playlist_id)
        # Replace the whole entry only after every page arrived
        self.cache[build_track_cache_key(playlist_id)] = tuple(items)
        logger.info(
            f"[Tracks] fetched playlist={playlist_id} items={len(items)} "
            f"fetch_ms={(perf_counter() - t0) * 1000:.1f}"
        )
        return items

    def _fetch_all_pages(self, sp: Any, playlist_id: str) -> List[PlaylistEntry]:
        items: List[PlaylistEntry] = []
        seen_next: set[str] = set()
        try:
            results = sp.playlist_items(
                playlist_id,
                limit=self.page_size,
                offset=0,
                fields=TRACK_FIELDS,
                additional_types=("track",),
            ) or {}
            pages = 1
            items.extend(results.get("items") or [])
            while results.get("next"):
                next_url = results["next"]
                if next_url in seen_next:
                    raise UpstreamError(f"Pagination loop detected for playlist {playlist_id}: {next_url}")
                if pages >= self.max_pages:
                    raise UpstreamError(
                        f"Playlist {playlist_id} exceeded {self.max_pages} pages; aborting pagination"
                    )
                seen_next.add(next_url)
                results = sp.next(results) or {}
                pages += 1
                items.extend(results.get("items") or [])
        except UpstreamError:
            raise
        except (SpotifyException, requests.RequestException) as e:
            raise upstream_error_from_exception(e, f"Failed to fetch tracks for playlist {playlist_id}") from e
        return items
