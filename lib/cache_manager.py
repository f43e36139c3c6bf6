"""Centralized cache utilities (TTLCache settings & key builders)."""
from __future__ import annotations

import os
import time
from typing import Callable

from cachetools import TTLCache

# Playlist track cache settings
TRACK_CACHE_VERSION = int(os.getenv("TRACK_CACHE_VERSION", "1"))
TRACK_CACHE_MAXSIZE = int(os.getenv("TRACK_CACHE_MAXSIZE", "1024"))
TRACK_CACHE_TTL_S = int(os.getenv("TRACK_CACHE_TTL_S", "300"))  # 5 min

# Lazy-initialized caches
_track_cache: TTLCache | None = None


def new_track_cache(
    timer: Callable[[], float] = time.monotonic,
    ttl: float = TRACK_CACHE_TTL_S,
    maxsize: int = TRACK_CACHE_MAXSIZE,
) -> TTLCache:
    # An entry stays valid while timer() - stored_at < ttl
    return TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)


def get_track_cache() -> TTLCache:
    global _track_cache
    if _track_cache is None:
        _track_cache = new_track_cache()
    return _track_cache


def build_track_cache_key(playlist_id: str) -> str:
    return f"tracks:{TRACK_CACHE_VERSION}:{playlist_id}"
