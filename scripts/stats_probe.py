#!/usr/bin/env python3
"""
Playlist Stats Probe.

Dev-only: runs the stats engine against the live Spotify API and prints the
same JSON the /playlist-stats endpoint would return.

Usage (after `pip install -e .`, or with PYTHONPATH=.):
    python scripts/stats_probe.py [--merge] <playlist id or url> [...]

Credentials are read from SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET
(.env and .env.local are loaded if present).
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Load .env file if it exists
env_file = os.path.join(ROOT, ".env")
if os.path.exists(env_file):
    load_dotenv(env_file)

# Load .env.local as fallback
env_local_file = os.path.join(ROOT, ".env.local")
if os.path.exists(env_local_file):
    load_dotenv(env_local_file, override=True)

from core import aggregate_result_to_dict, collect_playlist_stats, extract_playlist_ids  # noqa: E402
from lib.playlist_stats import AuthError  # noqa: E402

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(levelname)s] %(message)s"
)
logger = logging.getLogger(__name__)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch playlist statistics from Spotify")
    parser.add_argument("playlists", nargs="+", help="playlist IDs or open.spotify.com URLs")
    parser.add_argument("--merge", action="store_true", help="also compute merged stats")
    args = parser.parse_args()

    ids = extract_playlist_ids(args.playlists)
    if not ids:
        print("Error: no valid playlist IDs / URLs given")
        return 1

    logger.info(f"ids={ids} merge={args.merge}")
    try:
        result = await collect_playlist_stats(ids, merge=args.merge)
    except AuthError as e:
        print(f"❌ AUTH FAILED: {e}")
        print("If you see 'invalid_client', your credentials are incorrect.")
        return 1

    data = aggregate_result_to_dict(result)
    print("\n" + "=" * 70)
    print("PLAYLIST STATS PROBE RESULT")
    print("=" * 70)
    print(json.dumps(data, indent=2, ensure_ascii=False))
    print("=" * 70)

    # Exit code: 0 only if every playlist succeeded
    return 0 if all("error" not in p for p in data["perPlaylist"]) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
