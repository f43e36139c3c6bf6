"""
統計エンジンの例外クラス。
"""
from __future__ import annotations

from typing import Any


class PlaylistStatsError(Exception):
    """Base class for all engine errors."""


class ValidationError(PlaylistStatsError):
    """Request rejected before any upstream call (e.g. empty playlistIds)."""


class AuthError(PlaylistStatsError):
    """Client-credentials exchange failed. No playlist work can proceed."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class UpstreamError(PlaylistStatsError):
    """Metadata or track paging failed for a single playlist.

    ``payload`` carries what the catalog API returned (or the raw message) so
    the caller can surface it verbatim.
    """

    def __init__(self, message: str, payload: Any = None, status: int | None = None):
        super().__init__(message)
        self.payload = payload if payload is not None else message
        self.status = status
