import html
import time
import urllib.parse
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Optional

from utils.logger import log_debug

from .errors import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    CallbackServerError,
    MissingCodeError,
    StateMismatchError,
)

SUCCESS_PAGE = (
    "<html><body><h1>Authentication successful!</h1>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)

ERROR_PAGE = "<html><body><h1>Authentication Error</h1><p>{message}</p></body></html>"


@dataclass
class CallbackState:
    """Per-flow state shared between the listener and its request handler.

    ``on_code`` exchanges the authorization code and returns the access token;
    it runs inside the request so the browser only sees success once the
    token has been stored.
    """

    expected_state: str
    callback_path: str
    on_code: Callable[[str], str]
    access_token: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def done(self) -> bool:
        return self.access_token is not None or self.error is not None

    def handle_query(self, query: str) -> str:
        """Validate the redirect query and run the code exchange."""
        qs = urllib.parse.parse_qs(query)
        state = (qs.get("state") or [None])[0]
        error = (qs.get("error") or [None])[0]
        code = (qs.get("code") or [None])[0]

        if state != self.expected_state:
            raise StateMismatchError("State mismatch - possible CSRF attack")
        if error:
            raise AuthorizationDeniedError(f"Authorization error: {error}")
        if not code:
            raise MissingCodeError("No authorization code received")

        return self.on_code(code)


class _OAuthCallbackHandler(BaseHTTPRequestHandler):
    server_version = "SpotifyReverseCallback/1.0"
    # Socket timeout per connection; idle preconnects are dropped instead of blocking the listener.
    timeout = 5

    def do_GET(self):  # noqa: N802
        callback: CallbackState = self.server.callback_state  # type: ignore[attr-defined]
        parsed = urllib.parse.urlparse(self.path)
        log_debug(f"Received callback: {self.path}")

        if parsed.path != callback.callback_path:
            self._respond(404, "")
            return

        try:
            callback.access_token = callback.handle_query(parsed.query)
        except Exception as e:
            callback.error = e
            self._respond(500, ERROR_PAGE.format(message=html.escape(str(e))))
            return

        self._respond(200, SUCCESS_PAGE)

    def _respond(self, status: int, body: str) -> None:
        raw = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        # quiet
        return


class CallbackServer(HTTPServer):
    """Local listener that serves exactly one completed OAuth callback."""

    def __init__(self, host: str, port: int, callback_state: CallbackState):
        self.callback_state = callback_state
        try:
            super().__init__((host, port), _OAuthCallbackHandler)
        except OSError as e:
            raise CallbackServerError(f"Server error: could not listen on {host}:{port}: {e}") from e

    @classmethod
    def for_redirect_uri(cls, redirect_uri: str, callback_state: CallbackState) -> "CallbackServer":
        host, port, _ = parse_redirect_uri(redirect_uri)
        return cls(host, port, callback_state)

    def wait_for_token(self, timeout_seconds: float = 300.0) -> str:
        """Serve requests until the callback completes; raise its error if it failed."""
        deadline = time.monotonic() + float(timeout_seconds)
        self.timeout = 1
        while not self.callback_state.done:
            if time.monotonic() >= deadline:
                raise AuthorizationTimeoutError(
                    f"Timed out after {timeout_seconds:g}s waiting for the Spotify authorization callback"
                )
            self.handle_request()

        if self.callback_state.error is not None:
            raise self.callback_state.error
        return self.callback_state.access_token  # type: ignore[return-value]


def parse_redirect_uri(redirect_uri: str):
    """Return (host, port, path) the listener must serve for a redirect URI."""
    parsed = urllib.parse.urlparse(str(redirect_uri or "").strip())
    if parsed.scheme != "http":
        raise CallbackServerError(
            f"Redirect URI must be http://<host>:<port>/<path> for the local callback server, got {redirect_uri!r}"
        )
    host = parsed.hostname or "localhost"
    port = parsed.port or 80
    path = parsed.path or "/"
    return host, port, path
