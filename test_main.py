import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

import main
from config import load_config, require_credentials, validate_config, DEFAULT_CONFIG
from spotify_api.errors import (
    ConfigError,
    FetchError,
    MissingCredentialsError,
    SpotifyAPIError,
    api_error_payload,
)


def run_main(argv):
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main.main(argv)
    return code, out.getvalue(), err.getvalue()


class TestMain(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.object(main, "load_config", return_value={"spotify_redirect_uri": "http://localhost:8888/callback"})
        self.load_config = patcher.start()
        self.addCleanup(patcher.stop)

    def test_success_exits_zero(self):
        with mock.patch.object(main, "reverse_playlist") as reverse:
            code, _, err = run_main(["src", "dst", "--refresh"])

        self.assertEqual(code, 0)
        self.assertEqual(err, "")
        reverse.assert_called_once_with(self.load_config.return_value, "src", "dst", force_refresh=True)

    def test_error_prints_message_and_exits_one(self):
        cause = SpotifyAPIError("boom", status=404, payload={"error": {"status": 404, "message": "Not found."}})
        failure = FetchError("Failed to fetch tracks: boom")
        failure.__cause__ = cause

        with mock.patch.object(main, "reverse_playlist", side_effect=failure):
            code, _, err = run_main(["src", "dst"])

        self.assertEqual(code, 1)
        self.assertIn("Error: Failed to fetch tracks: boom", err)
        self.assertNotIn("API Error", err)

    def test_debug_prints_api_payload(self):
        failure = SpotifyAPIError("boom", status=403, payload={"error": {"status": 403, "message": "Forbidden"}})

        with mock.patch.object(main, "reverse_playlist", side_effect=failure):
            code, _, err = run_main(["src", "dst", "--debug"])

        self.assertEqual(code, 1)
        self.assertIn("Error: boom", err)
        self.assertIn("API Error:", err)
        self.assertIn("Forbidden", err)

    def test_missing_credentials_prints_setup_help(self):
        with mock.patch.object(main, "reverse_playlist", side_effect=MissingCredentialsError("SPOTIFY_CLIENT_ID must be set")):
            code, out, err = run_main(["src", "dst"])

        self.assertEqual(code, 1)
        self.assertIn("SPOTIFY_CLIENT_ID must be set", err)
        self.assertIn("developer.spotify.com/dashboard", out)

    def test_missing_arguments_exit_one_with_usage(self):
        err = io.StringIO()
        with redirect_stderr(err), self.assertRaises(SystemExit) as ctx:
            main.main(["only-one"])

        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("usage:", err.getvalue())
        self.assertIn("destPlaylistId", err.getvalue())

    def test_unknown_option_exits_one(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as ctx:
            main.main(["src", "dst", "--bogus"])
        self.assertEqual(ctx.exception.code, 1)


class TestErrorPayload(unittest.TestCase):
    def test_walks_cause_chain(self):
        inner = SpotifyAPIError("x", status=400, payload={"error": "bad"})
        outer = FetchError("wrapped")
        outer.__cause__ = inner
        self.assertEqual(api_error_payload(outer), {"error": "bad"})
        self.assertIsNone(api_error_payload(ValueError("plain")))


class TestConfig(unittest.TestCase):
    def _env_file(self, text):
        tmp = tempfile.NamedTemporaryFile("w", suffix=".env", delete=False, encoding="utf-8")
        tmp.write(text)
        tmp.close()
        self.addCleanup(os.remove, tmp.name)
        return tmp.name

    def test_load_config_reads_env_file(self):
        path = self._env_file(
            "SPOTIFY_CLIENT_ID=abc\nSPOTIFY_CLIENT_SECRET=shh\nSPOTIFY_TOKEN_PATH=/tmp/tok.json\n"
        )
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config(path)

        self.assertEqual(config["spotify_client_id"], "abc")
        self.assertEqual(config["spotify_client_secret"], "shh")
        self.assertEqual(config["spotify_token_path"], "/tmp/tok.json")
        self.assertEqual(config["spotify_redirect_uri"], "http://localhost:8888/callback")
        self.assertEqual(config["page_size"], 100)
        self.assertEqual(config["retry_attempts"], 3)

    def test_environment_wins_over_env_file(self):
        path = self._env_file("SPOTIFY_CLIENT_ID=from-file\n")
        with mock.patch.dict(os.environ, {"SPOTIFY_CLIENT_ID": "from-env"}, clear=True):
            config = load_config(path)
        self.assertEqual(config["spotify_client_id"], "from-env")

    def test_invalid_redirect_uri_rejected(self):
        path = self._env_file("SPOTIFY_REDIRECT_URI=https://example.com/cb\n")
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ConfigError):
                load_config(path)

    def test_missing_env_file(self):
        with self.assertRaises(ConfigError):
            load_config("/nonexistent/.env")

    def test_require_credentials(self):
        with self.assertRaises(MissingCredentialsError) as ctx:
            require_credentials({"spotify_client_id": "", "spotify_client_secret": ""})
        self.assertIn("SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET", str(ctx.exception))
        require_credentials({"spotify_client_id": "a", "spotify_client_secret": "b"})

    def test_validate_config_ranges(self):
        config = dict(DEFAULT_CONFIG, page_size=500, retry_attempts=True)
        ok, errors = validate_config(config)
        self.assertFalse(ok)
        self.assertTrue(any("page_size" in e for e in errors))
        self.assertTrue(any("retry_attempts" in e for e in errors))

        self.assertEqual(validate_config(dict(DEFAULT_CONFIG)), (True, []))


if __name__ == "__main__":
    unittest.main(verbosity=2)
