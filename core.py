#!/usr/bin/env python3
"""
Spotify プレイリストを取得して、
- プレイリスト基本情報（名前 / 説明 / オーナー / 曲数）
- トラック統計（トップアーティスト / 年別曲数 / 最初・最後に追加した曲 / 最長・最短曲 など）
- 複数プレイリストのマージ統計

を Python 辞書で返すコアモジュール。
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from time import perf_counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

import requests
import spotipy

from lib.playlist_stats import (
    AggregateResult,
    CredentialCache,
    PlaylistMeta,
    PlaylistOutcome,
    SongSnapshot,
    StatisticsSummary,
    TrackRetriever,
    UpstreamError,
    ValidationError,
    compute_stats,
    merge_playlist_stats,
    run_in_batches,
)
from lib.playlist_stats.credentials import SPOTIFY_TOKEN_URL
from lib.playlist_stats.retriever import upstream_error_from_exception

# Configure logger for this module
logger = logging.getLogger(__name__)

SPOTIFY_HTTP_TIMEOUT_S = float(os.getenv("SPOTIFY_HTTP_TIMEOUT_S", "10"))
STATS_BATCH_SIZE = int(os.getenv("STATS_BATCH_SIZE", "3"))
STATS_BATCH_PAUSE_S = int(os.getenv("STATS_BATCH_PAUSE_MS", "100")) / 1000.0

EMPTY_IDS_MESSAGE = "playlistIds must be a non-empty array"

PLAYLIST_META_FIELDS = "name,description,owner(id,display_name),tracks(total)"


# =========================
# Spotify クライアント
# =========================

_credential_cache: CredentialCache | None = None


def get_credential_cache() -> CredentialCache:
    """
    環境変数から Spotify API のクレデンシャルを読み込み、
    プロセス共通の CredentialCache を返す。

    必要な環境変数:
    - SPOTIFY_CLIENT_ID
    - SPOTIFY_CLIENT_SECRET
    """
    global _credential_cache
    if _credential_cache is None:
        _credential_cache = CredentialCache(
            client_id=os.getenv("SPOTIFY_CLIENT_ID"),
            client_secret=os.getenv("SPOTIFY_CLIENT_SECRET"),
            token_url=os.getenv("SPOTIFY_TOKEN_URL", SPOTIFY_TOKEN_URL),
            timeout_s=SPOTIFY_HTTP_TIMEOUT_S,
        )
    return _credential_cache


def get_spotify_client(access_token: str) -> spotipy.Spotify:
    """
    1 トークンに紐づく spotipy クライアント（リトライなし）。

    spotipy が自前で組む Session は retries=0 でも status_forcelist (429/5xx) を持ち、
    urllib3 の RetryError 経由で本来のステータスが 429 "Max Retries" に化けてしまう。
    素の requests.Session を渡して、上流のステータスと本文をそのまま受け取る。
    """
    return spotipy.Spotify(
        auth=access_token,
        requests_session=requests.Session(),
        requests_timeout=SPOTIFY_HTTP_TIMEOUT_S,
        retries=0,
        status_retries=0,
    )


# =========================
# プレイリストID抽出
# =========================

_URI_RE = re.compile(r"^spotify:playlist:([A-Za-z0-9]+)$")
_PATH_RE = re.compile(r"playlist/([A-Za-z0-9]+)")
_RAW_ID_RE = re.compile(r"^[A-Za-z0-9]{22,}$")


def extract_playlist_id(url_or_id: str) -> Optional[str]:
    """Extract a Spotify playlist ID from a full URL or a raw ID.

    Supports formats like:
    - https://open.spotify.com/playlist/<id>?si=...
    - https://open.spotify.com/user/<user>/playlist/<id>
    - spotify:playlist:<id>
    - raw ID of 22+ alphanumeric characters

    Returns None when nothing matches.
    """
    s = (url_or_id or "").strip()
    if not s:
        return None

    m = _URI_RE.match(s)
    if m:
        return m.group(1)

    m = _PATH_RE.search(urlparse(s).path or s)
    if m:
        return m.group(1)

    if _RAW_ID_RE.match(s):
        return s
    return None


def extract_playlist_ids(values: Iterable[str]) -> List[str]:
    """Apply extract_playlist_id to each value, silently dropping the ones that fail."""
    ids: List[str] = []
    for v in values or []:
        pid = extract_playlist_id(v) if isinstance(v, str) else None
        if pid:
            ids.append(pid)
        else:
            logger.info(f"[extract] dropped unrecognised playlist input: {v!r}")
    return ids


# =========================
# プレイリスト取得
# =========================


async def fetch_playlist_meta(sp: Any, playlist_id: str) -> Dict[str, Any]:
    """GET /playlists/{id} (name, description, owner, tracks.total)."""
    try:
        playlist = await asyncio.to_thread(sp.playlist, playlist_id, fields=PLAYLIST_META_FIELDS)
    except Exception as e:
        raise upstream_error_from_exception(e, f"Failed to fetch playlist {playlist_id}") from e
    return playlist or {}


def build_playlist_meta(playlist: Dict[str, Any], items: Sequence[Any]) -> PlaylistMeta:
    owner = playlist.get("owner") if isinstance(playlist.get("owner"), dict) else {}
    total = (playlist.get("tracks") or {}).get("total") if isinstance(playlist.get("tracks"), dict) else None
    return PlaylistMeta(
        name=playlist.get("name") or "",
        description=playlist.get("description") or "",
        owner=owner.get("display_name") or owner.get("id"),
        total_tracks=total if isinstance(total, int) and total else len(items),
    )


async def _playlist_outcome(sp: Any, playlist_id: str, retriever: TrackRetriever) -> PlaylistOutcome:
    playlist = await fetch_playlist_meta(sp, playlist_id)
    items = await retriever.get_all_tracks(sp, playlist_id)
    return PlaylistOutcome(
        playlist_id=playlist_id,
        meta=build_playlist_meta(playlist, items),
        stats=compute_stats(items),
    )


def _error_payload(e: Exception) -> Any:
    if isinstance(e, UpstreamError):
        return e.payload
    return str(e)


async def collect_playlist_stats(
    playlist_ids: Sequence[str],
    merge: bool = False,
    *,
    credentials: CredentialCache | None = None,
    retriever: TrackRetriever | None = None,
    client_factory: Callable[[str], Any] = get_spotify_client,
    batch_size: int = STATS_BATCH_SIZE,
    pause_s: float = STATS_BATCH_PAUSE_S,
    sleep: Callable[[float], Any] = asyncio.sleep,
) -> AggregateResult:
    """
    複数プレイリストの統計をまとめて取得する。

    - playlist_ids が空なら ValidationError
    - トークン取得失敗 (AuthError) はリクエスト全体の失敗としてそのまま送出
    - プレイリスト単位の失敗は PlaylistOutcome.error に閉じ込める
    - merge=True のときだけ成功分を連結して merged を計算（それ以外は None）
    """
    if isinstance(playlist_ids, str) or not playlist_ids:
        raise ValidationError(EMPTY_IDS_MESSAGE)

    t0 = perf_counter()
    credentials = credentials or get_credential_cache()
    retriever = retriever or TrackRetriever()

    credential = await credentials.get_token()
    sp = client_factory(credential.access_token)

    batch = await run_in_batches(
        list(playlist_ids),
        lambda pid: _playlist_outcome(sp, pid, retriever),
        batch_size=batch_size,
        pause_s=pause_s,
        sleep=sleep,
    )

    per_playlist: List[PlaylistOutcome] = []
    for r in batch:
        if r.ok:
            per_playlist.append(r.value)
        else:
            logger.error(f"[playlist-stats] playlist fetch error id={r.item}: {r.error}")
            per_playlist.append(PlaylistOutcome(playlist_id=r.item, error=_error_payload(r.error)))

    merged: StatisticsSummary | None = None
    if merge:
        ok_ids = [o.playlist_id for o in per_playlist if o.ok]
        merged = await merge_playlist_stats(sp, ok_ids, retriever)

    failed = sum(1 for o in per_playlist if not o.ok)
    logger.info(
        f"[PERF] playlists={len(per_playlist)} failed={failed} merge={'1' if merge else '0'} "
        f"total_ms={(perf_counter() - t0) * 1000:.1f}"
    )
    return AggregateResult(per_playlist=per_playlist, merged=merged)


# =========================
# フロント向けのフラットな dict に変換
# =========================


def _snapshot_to_dict(s: SongSnapshot | None, with_added_at: bool) -> Dict[str, Any] | None:
    if s is None:
        return None
    if with_added_at:
        return {"added_at": s.added_at, "name": s.name, "artists": list(s.artists)}
    return {"name": s.name, "artists": list(s.artists), "duration_ms": s.duration_ms}


def summary_to_dict(summary: StatisticsSummary | None) -> Dict[str, Any] | None:
    """
    StatisticsSummary をフロント向けの camelCase dict に変換する。

    戻り値フォーマット:
    {
      "topArtists": [{"name": str, "count": int}, ...],
      "topArtistPerYear": {year: {"name": str, "count": int}},
      "songsPerYear": [{"year": int, "count": int}, ...],
      "firstSong" / "lastSong": {"added_at", "name", "artists"} | None,
      "avgArtistsPerSong": float,
      "uniqueArtists": int,
      "uniqueAlbums": int,
      "longestSong" / "shortestSong": {"name", "artists", "duration_ms"} | None,
    }
    """
    if summary is None:
        return None
    return {
        "topArtists": [{"name": a.name, "count": a.count} for a in summary.top_artists],
        "topArtistPerYear": {
            year: {"name": a.name, "count": a.count} for year, a in summary.top_artist_per_year.items()
        },
        "songsPerYear": [{"year": y.year, "count": y.count} for y in summary.songs_per_year],
        "firstSong": _snapshot_to_dict(summary.first_song, with_added_at=True),
        "lastSong": _snapshot_to_dict(summary.last_song, with_added_at=True),
        "avgArtistsPerSong": summary.avg_artists_per_song,
        "uniqueArtists": summary.unique_artists,
        "uniqueAlbums": summary.unique_albums,
        "longestSong": _snapshot_to_dict(summary.longest_song, with_added_at=False),
        "shortestSong": _snapshot_to_dict(summary.shortest_song, with_added_at=False),
    }


def outcome_to_dict(outcome: PlaylistOutcome) -> Dict[str, Any]:
    if not outcome.ok:
        return {"playlistId": outcome.playlist_id, "error": outcome.error}
    meta = outcome.meta
    return {
        "playlistId": outcome.playlist_id,
        "meta": {
            "name": meta.name,
            "description": meta.description,
            "owner": meta.owner,
            "totalTracks": meta.total_tracks,
        },
        "stats": summary_to_dict(outcome.stats),
    }


def aggregate_result_to_dict(result: AggregateResult) -> Dict[str, Any]:
    return {
        "perPlaylist": [outcome_to_dict(o) for o in result.per_playlist],
        "merged": summary_to_dict(result.merged),
    }
