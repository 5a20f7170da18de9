import json
import os
import tempfile
import time
import unittest

import httpx

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from config import DEFAULT_CONFIG
from managers.reverse_manager import parse_playlist_id, reverse_playlist
from spotify_api.auth import SpotifyAuth
from spotify_api.errors import ConfigError, MissingCredentialsError, PlaylistVerificationError
from spotify_api.retry import RetryPolicy
from spotify_api.token_manager import TokenInfo, TokenManager

API_BASE = "https://api.example/v1"


def track_uri(idx: int) -> str:
    return f"spotify:track:{idx:022d}"


class FakeSpotifyWebAPI:
    """httpx transport handler emulating the playlist endpoints of the Web API."""

    def __init__(self, playlists, *, reject_uris=()):
        self.playlists = {k: list(v) for k, v in playlists.items()}
        self.reject_uris = set(reject_uris)
        self.requests = []

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, dict(request.url.params), body))

        if request.headers.get("Authorization") != "Bearer valid-token":
            return httpx.Response(401, json={"error": {"status": 401, "message": "Invalid access token"}})

        parts = path[len("/v1/playlists/"):].split("/")
        playlist_id = parts[0]
        if playlist_id not in self.playlists:
            return httpx.Response(404, json={"error": {"status": 404, "message": "Not found."}})

        if len(parts) == 1 and request.method == "GET":
            return httpx.Response(200, json={"id": playlist_id, "name": f"List {playlist_id}"})

        entries = self.playlists[playlist_id]
        if request.method == "GET":
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            page = entries[offset : offset + limit]
            nxt = f"{API_BASE}/playlists/{playlist_id}/tracks?offset={offset + limit}" if offset + limit < len(entries) else None
            items = [{"track": None if uri is None else {"uri": uri}} for uri in page]
            return httpx.Response(200, json={"items": items, "next": nxt})

        if request.method == "PUT":
            self.playlists[playlist_id] = list(body["uris"])
            return httpx.Response(201, json={"snapshot_id": "snap"})

        if request.method == "POST":
            if self.reject_uris.intersection(body["uris"]):
                return httpx.Response(400, json={"error": {"status": 400, "message": "Invalid base62 id"}})
            self.playlists[playlist_id].extend(body["uris"])
            return httpx.Response(201, json={"snapshot_id": "snap"})

        return httpx.Response(405)


class ReverseTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(
            {
                "spotify_client_id": "client-id",
                "spotify_client_secret": "client-secret",
                "spotify_token_path": os.path.join(self._tmp.name, "token.json"),
                "spotify_api_base_url": API_BASE,
                "page_size": 2,
            }
        )
        self.token_manager = TokenManager(cache_path=self.config["spotify_token_path"])
        self.token_manager.save(
            TokenInfo("valid-token", "Bearer", expires_at=time.time() + 3600, refresh_token="rt")
        )
        self.sleeps = []

    def tearDown(self):
        self._tmp.cleanup()

    def run_reverse(self, api, source="src", destination="dst"):
        return reverse_playlist(
            self.config,
            source,
            destination,
            auth=SpotifyAuth(self.config, token_manager=self.token_manager),
            http_client=api.client(),
            retry=RetryPolicy(sleep=self.sleeps.append),
        )


class TestReversePlaylist(ReverseTestCase):
    def test_destination_receives_reversed_tracks_in_batches(self):
        a, b, c = track_uri(1), track_uri(2), track_uri(3)
        api = FakeSpotifyWebAPI({"src": [a, b, c], "dst": [track_uri(50)]})

        result = self.run_reverse(api)

        self.assertEqual(api.playlists["dst"], [c, b, a])
        writes = [(m, body["uris"]) for m, path, _, body in api.requests if m in ("PUT", "POST")]
        self.assertEqual(writes, [("PUT", []), ("POST", [c, b]), ("POST", [a])])
        self.assertEqual(result.source_count, 3)
        self.assertEqual(result.added, [c, b, a])
        self.assertEqual(result.skipped, [])

    def test_verifies_both_playlists_before_reading(self):
        api = FakeSpotifyWebAPI({"src": [track_uri(1)], "dst": []})
        self.run_reverse(api)

        first_three = [(m, p) for m, p, _, _ in api.requests[:3]]
        self.assertEqual(
            first_three,
            [
                ("GET", "/v1/playlists/src"),
                ("GET", "/v1/playlists/dst"),
                ("GET", "/v1/playlists/src/tracks"),
            ],
        )

    def test_null_and_invalid_entries_removed_before_reversal(self):
        src = [track_uri(1), None, "spotify:local:a:b:c:1", track_uri(2), track_uri(3), None]
        api = FakeSpotifyWebAPI({"src": src, "dst": []})

        self.run_reverse(api)
        self.assertEqual(api.playlists["dst"], [track_uri(3), track_uri(2), track_uri(1)])

    def test_running_twice_gives_same_result(self):
        src = [track_uri(i) for i in range(7)]
        api = FakeSpotifyWebAPI({"src": src, "dst": [track_uri(99)]})

        self.run_reverse(api)
        first = list(api.playlists["dst"])
        self.run_reverse(api)

        self.assertEqual(api.playlists["dst"], first)
        self.assertEqual(first, list(reversed(src)))

    def test_rejected_track_is_skipped(self):
        src = [track_uri(1), track_uri(2), track_uri(3), track_uri(4)]
        api = FakeSpotifyWebAPI({"src": src, "dst": []}, reject_uris={track_uri(3)})

        result = self.run_reverse(api)

        self.assertEqual(api.playlists["dst"], [track_uri(4), track_uri(2), track_uri(1)])
        self.assertEqual(result.skipped, [track_uri(3)])

    def test_missing_destination_aborts_before_writing(self):
        api = FakeSpotifyWebAPI({"src": [track_uri(1)]})

        with self.assertRaises(PlaylistVerificationError) as ctx:
            self.run_reverse(api)
        self.assertIn("Destination playlist verification failed", str(ctx.exception))
        self.assertFalse(any(m in ("PUT", "POST") for m, _, _, _ in api.requests))

    def test_accepts_playlist_urls(self):
        api = FakeSpotifyWebAPI({"src": [track_uri(1), track_uri(2)], "dst": []})
        self.run_reverse(
            api,
            source="https://open.spotify.com/playlist/src?si=abc",
            destination="spotify:playlist:dst",
        )
        self.assertEqual(api.playlists["dst"], [track_uri(2), track_uri(1)])


class TestReverseValidation(ReverseTestCase):
    def test_same_source_and_destination_rejected(self):
        with self.assertRaises(ConfigError):
            self.run_reverse(FakeSpotifyWebAPI({}), source="abc", destination="abc")

    def test_missing_ids_rejected(self):
        with self.assertRaises(ConfigError):
            self.run_reverse(FakeSpotifyWebAPI({}), source="", destination="abc")

    def test_missing_credentials_fail_fast(self):
        self.config["spotify_client_secret"] = ""
        api = FakeSpotifyWebAPI({"src": [], "dst": []})

        with self.assertRaises(MissingCredentialsError) as ctx:
            self.run_reverse(api)
        self.assertIn("SPOTIFY_CLIENT_SECRET", str(ctx.exception))
        self.assertEqual(api.requests, [])


class TestParsePlaylistId(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(parse_playlist_id("37i9dQZF1DXcBWIGoYBM5M"), "37i9dQZF1DXcBWIGoYBM5M")
        self.assertEqual(parse_playlist_id("spotify:playlist:37i9dQZF1DXcBWIGoYBM5M"), "37i9dQZF1DXcBWIGoYBM5M")
        self.assertEqual(
            parse_playlist_id("https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=x"),
            "37i9dQZF1DXcBWIGoYBM5M",
        )
        self.assertEqual(
            parse_playlist_id("https://open.spotify.com/intl-de/playlist/37i9dQZF1DXcBWIGoYBM5M"),
            "37i9dQZF1DXcBWIGoYBM5M",
        )
        self.assertEqual(parse_playlist_id("  "), "")


if __name__ == "__main__":
    unittest.main(verbosity=2)
