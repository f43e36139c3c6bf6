"""
複数プレイリストのマージ統計。
成功したプレイリストのエントリを順番どおりに連結し、統計を 1 回だけ計算し直す。
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence

from lib.playlist_stats.models import PlaylistEntry, StatisticsSummary
from lib.playlist_stats.retriever import TrackRetriever
from lib.playlist_stats.stats import compute_stats

logger = logging.getLogger(__name__)


def concat_entries(entry_lists: Iterable[Sequence[Optional[PlaylistEntry]]]) -> List[Optional[PlaylistEntry]]:
    merged: List[Optional[PlaylistEntry]] = []
    for entries in entry_lists:
        merged.extend(entries)
    return merged


def merge_stats(entry_lists: Iterable[Sequence[Optional[PlaylistEntry]]]) -> StatisticsSummary:
    return compute_stats(concat_entries(entry_lists))


async def merge_playlist_stats(
    sp: Any,
    playlist_ids: Sequence[str],
    retriever: TrackRetriever,
) -> StatisticsSummary:
    """Recompute statistics over the union of ``playlist_ids`` (successful ones only).

    Entries are read back through the retriever, so within the cache TTL this
    does not touch the network.
    """
    entry_lists = []
    for pid in playlist_ids:
        entry_lists.append(await retriever.get_all_tracks(sp, pid))
    summary = merge_stats(entry_lists)
    logger.info(
        f"[Merge] playlists={len(playlist_ids)} entries={sum(len(e) for e in entry_lists)} "
        f"unique_artists={summary.unique_artists}"
    )
    return summary
