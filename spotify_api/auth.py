import json
import secrets
import time
import urllib.parse
import webbrowser
from typing import Any, Callable, Dict, Optional

import httpx

from utils.logger import log_debug, log_info, log_success, log_warning

from .callback_server import CallbackServer, CallbackState, parse_redirect_uri
from .errors import StorageError, TokenExchangeError
from .token_manager import DEFAULT_TOKEN_CACHE_PATH, TokenInfo, TokenManager

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
DEFAULT_REDIRECT_URI = "http://localhost:8888/callback"

# Read the source (possibly private) and rewrite the destination, public or private.
REQUIRED_SCOPES = (
    "playlist-read-private",
    "playlist-modify-private",
    "playlist-modify-public",
)

EXPIRY_SKEW_SECONDS = 60


def open_browser(url: str) -> bool:
    """Best-effort launch of the system browser; print the URL if that fails."""
    try:
        opened = webbrowser.open(url, new=1, autoraise=True)
    except webbrowser.Error:
        opened = False

    if not opened:
        log_info("Could not open browser automatically. Please open this URL manually:")
        log_info(url)
    return opened


class SpotifyAuth:
    """Spotify OAuth (Authorization Code with client secret) helper.

    ``get_access_token`` walks the cached-token -> refresh -> interactive
    browser flow and always leaves a fresh record in the token cache.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        *,
        token_manager: Optional[TokenManager] = None,
        http_client: Optional[httpx.Client] = None,
        browser: Callable[[str], bool] = open_browser,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or {}
        self.token_manager = token_manager or TokenManager(
            cache_path=self.config.get("spotify_token_path") or DEFAULT_TOKEN_CACHE_PATH
        )
        self.http_client = http_client
        self.browser = browser
        self.clock = clock

    @property
    def client_id(self) -> str:
        return str(self.config.get("spotify_client_id", "")).strip()

    @property
    def client_secret(self) -> str:
        return str(self.config.get("spotify_client_secret", "")).strip()

    @property
    def redirect_uri(self) -> str:
        return str(self.config.get("spotify_redirect_uri") or DEFAULT_REDIRECT_URI).strip()

    @property
    def accounts_base_url(self) -> str:
        return str(self.config.get("spotify_accounts_base_url") or SPOTIFY_ACCOUNTS_BASE_URL).rstrip("/")

    @property
    def scope(self) -> str:
        return " ".join(REQUIRED_SCOPES)

    # -----------------
    # Token lifecycle
    # -----------------

    def load_cached_token(self) -> Optional[TokenInfo]:
        try:
            return self.token_manager.load()
        except StorageError as e:
            log_warning(f"Ignoring unreadable token cache: {e}")
            return None

    def get_access_token(self, force_refresh: bool = False) -> str:
        cached = self.load_cached_token()

        if cached is not None and not force_refresh:
            if not self.token_manager.is_expired(cached, skew_seconds=EXPIRY_SKEW_SECONDS, now=self.clock()):
                log_info("Using existing access token")
                return cached.access_token

        if cached is not None and cached.refresh_token:
            log_info("Refreshing access token...")
            return self.refresh_access_token(refresh_token=cached.refresh_token).access_token

        log_info("Starting authorization flow...")
        return self.run_authorization_flow()

    def refresh_access_token(self, *, refresh_token: str) -> TokenInfo:
        payload = self._post_form(
            f"{self.accounts_base_url}/api/token",
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            action="refresh",
        )

        token = TokenInfo.from_spotify_token_response(payload, now=self.clock())
        if not token.access_token:
            raise TokenExchangeError(f"Spotify token refresh failed: {payload}", payload=payload)

        # Spotify usually omits refresh_token on refresh; keep the existing one.
        if not token.refresh_token:
            token = token.with_refresh_token(refresh_token)

        self.token_manager.save(token)
        log_success("Token refreshed successfully")
        return token

    def exchange_code_for_token(self, *, code: str) -> TokenInfo:
        payload = self._post_form(
            f"{self.accounts_base_url}/api/token",
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            action="exchange",
        )

        token = TokenInfo.from_spotify_token_response(payload, now=self.clock())
        if not token.access_token:
            raise TokenExchangeError(f"Spotify token exchange failed: {payload}", payload=payload)

        self.token_manager.save(token)
        return token

    # -----------------
    # Interactive flow
    # -----------------

    def get_authorize_url(self, *, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": self.scope,
        }
        return f"{self.accounts_base_url}/authorize?{urllib.parse.urlencode(params)}"

    def run_authorization_flow(self) -> str:
        """Run the browser flow and return the new access token."""

        state = secrets.token_hex(16)
        auth_url = self.get_authorize_url(state=state)
        log_debug(f"Authorization URL: {auth_url}")

        _, _, callback_path = parse_redirect_uri(self.redirect_uri)
        callback = CallbackState(
            expected_state=state,
            callback_path=callback_path,
            on_code=lambda code: self.exchange_code_for_token(code=code).access_token,
        )

        server = CallbackServer.for_redirect_uri(self.redirect_uri, callback)
        try:
            log_info("Waiting for authentication...")
            log_info("Opening browser for Spotify authorization...")
            self.browser(auth_url)
            access_token = server.wait_for_token(float(self.config.get("auth_timeout", 300)))
        finally:
            server.server_close()

        log_success("Authentication successful")
        return access_token

    def _post_form(self, url: str, form: Dict[str, Any], *, action: str) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        timeout = float(self.config.get("http_timeout", 30.0))

        try:
            if self.http_client is not None:
                resp = self.http_client.post(url, data=data, headers=headers)
            else:
                with httpx.Client(timeout=timeout, follow_redirects=False) as client:
                    resp = client.post(url, data=data, headers=headers)
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Spotify token {action} request failed: {e}") from e

        try:
            payload = resp.json()
        except json.JSONDecodeError:
            payload = resp.text

        if resp.status_code >= 400:
            log_debug(f"Token {action} error: {payload}")
            raise TokenExchangeError(
                f"Spotify token {action} failed (HTTP {resp.status_code})",
                payload=payload,
            )

        if not isinstance(payload, dict):
            raise TokenExchangeError(f"Spotify token response was not an object: {payload}", payload=payload)

        return payload
