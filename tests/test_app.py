import functools
import unittest
from unittest import mock

from fastapi.testclient import TestClient

import app as app_module
import core
from lib.cache_manager import new_track_cache
from lib.playlist_stats import TrackRetriever, UpstreamError
from spotify_fakes import FakeClock, FakeCredentials, FakeSpotify, entry

TOP_ID = "37i9dQZF1DXcBWIGoYBM5M"
OTHER_ID = "1A2b3C4d5E6f7G8h9I0jKl"


class PlaylistStatsEndpointTests(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app_module.app)
        self.credentials = FakeCredentials()
        self.sp = FakeSpotify(
            {
                TOP_ID: [[
                    entry("Song 1", ["A"], added_at="2023-01-05T00:00:00Z"),
                    entry("Song 2", ["A"], added_at="2023-02-05T00:00:00Z"),
                    entry("Song 3", ["B"], added_at="2023-03-05T00:00:00Z"),
                ]],
                OTHER_ID: [[entry("Song 4", ["C"], added_at="2024-01-01T00:00:00Z")]],
            },
            fail_meta={"0000000000000000000000": 404},
        )

    def _patched(self):
        collect = functools.partial(
            core.collect_playlist_stats,
            credentials=self.credentials,
            retriever=TrackRetriever(cache=new_track_cache(timer=FakeClock(), ttl=300)),
            client_factory=lambda token: self.sp,
            pause_s=0,
        )
        return mock.patch.object(app_module, "collect_playlist_stats", collect)

    def test_single_playlist(self):
        with self._patched():
            resp = self.client.post("/playlist-stats", json={"playlistIds": [TOP_ID], "merge": False})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertIsNone(data["merged"])
        stats = data["perPlaylist"][0]["stats"]
        self.assertEqual(stats["topArtists"], [{"name": "A", "count": 2}, {"name": "B", "count": 1}])
        self.assertEqual(stats["songsPerYear"], [{"year": 2023, "count": 3}])
        self.assertEqual(stats["uniqueArtists"], 2)
        self.assertEqual(stats["topArtistPerYear"], {"2023": {"name": "A", "count": 2}})
        self.assertEqual(stats["longestSong"]["duration_ms"], 200000)
        self.assertNotIn("error", data["perPlaylist"][0])

    def test_urls_are_accepted_and_merge_returned(self):
        with self._patched():
            resp = self.client.post(
                "/playlist-stats",
                json={"playlistIds": [f"https://open.spotify.com/playlist/{TOP_ID}?si=x", OTHER_ID], "merge": True},
            )

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual([p["playlistId"] for p in data["perPlaylist"]], [TOP_ID, OTHER_ID])
        self.assertEqual(data["merged"]["uniqueArtists"], 3)
        self.assertEqual(data["merged"]["songsPerYear"], [{"year": 2023, "count": 3}, {"year": 2024, "count": 1}])

    def test_per_playlist_error_keeps_status_200(self):
        with self._patched():
            resp = self.client.post(
                "/playlist-stats",
                json={"playlistIds": [TOP_ID, "0000000000000000000000"]},
            )

        self.assertEqual(resp.status_code, 200)
        failed = resp.json()["perPlaylist"][1]
        self.assertEqual(set(failed), {"playlistId", "error"})
        self.assertEqual(failed["error"]["status"], 404)

    def test_empty_or_invalid_ids_rejected(self):
        bodies = (
            {"playlistIds": []},
            {},
            {"playlistIds": ["not valid"]},
            {"playlistIds": TOP_ID},
            {"playlistIds": [123]},
            {"playlistIds": [TOP_ID], "merge": "sometimes"},
        )
        for body in bodies:
            with self.subTest(body=body), self._patched():
                resp = self.client.post("/playlist-stats", json=body)
                self.assertEqual(resp.status_code, 400)
                self.assertEqual(resp.json(), {"error": "playlistIds must be a non-empty array"})

    def test_missing_body_rejected(self):
        with self._patched():
            resp = self.client.post("/playlist-stats")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "playlistIds must be a non-empty array"})
        self.assertEqual(self.credentials.calls, 0)

    def test_auth_failure_is_whole_request_error(self):
        self.credentials = FakeCredentials(fail=True)
        with self._patched():
            resp = self.client.post("/playlist-stats", json={"playlistIds": [TOP_ID]})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json(), {"error": "Unable to get Spotify token"})

    def test_upstream_error_outside_batch(self):
        async def broken(ids, merge=False):
            raise UpstreamError("merge re-fetch failed")

        with mock.patch.object(app_module, "collect_playlist_stats", broken):
            resp = self.client.post("/playlist-stats", json={"playlistIds": [TOP_ID], "merge": True})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json(), {"error": "merge re-fetch failed"})

    def test_oversized_body_rejected(self):
        resp = self.client.post(
            "/playlist-stats",
            content=b"{}",
            headers={"content-type": "application/json", "content-length": str(app_module.MAX_BODY_BYTES + 1)},
        )
        self.assertEqual(resp.status_code, 413)

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["ok"])


if __name__ == "__main__":
    unittest.main()
