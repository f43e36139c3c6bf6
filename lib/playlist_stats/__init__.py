"""
Playlist statistics engine.

Public API:
  - compute_stats(entries) -> StatisticsSummary
  - merge_stats(entry_lists) / merge_playlist_stats(sp, ids, retriever)
  - run_in_batches(items, fn, batch_size, pause_s) -> [BatchResult]
  - CredentialCache(client_id, client_secret).get_token() -> Credential
  - TrackRetriever(cache).get_all_tracks(sp, playlist_id) -> [entry]
"""
from lib.playlist_stats.batching import BatchResult, run_in_batches
from lib.playlist_stats.credentials import CredentialCache
from lib.playlist_stats.errors import AuthError, PlaylistStatsError, UpstreamError, ValidationError
from lib.playlist_stats.merge import merge_playlist_stats, merge_stats
from lib.playlist_stats.models import (
    AggregateResult,
    ArtistCount,
    Credential,
    PlaylistMeta,
    PlaylistOutcome,
    SongSnapshot,
    StatisticsSummary,
    YearCount,
)
from lib.playlist_stats.retriever import TrackRetriever
from lib.playlist_stats.stats import compute_stats

__all__ = [
    "compute_stats",
    "merge_stats",
    "merge_playlist_stats",
    "run_in_batches",
    "BatchResult",
    "CredentialCache",
    "TrackRetriever",
    "AggregateResult",
    "ArtistCount",
    "Credential",
    "PlaylistMeta",
    "PlaylistOutcome",
    "SongSnapshot",
    "StatisticsSummary",
    "YearCount",
    "PlaylistStatsError",
    "ValidationError",
    "AuthError",
    "UpstreamError",
]
