import json
from typing import Any, Dict, List, Optional

import httpx

from .errors import SpotifyAPIError


SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class SpotifyClient:
    """Thin Spotify Web API client for the playlist endpoints this tool needs.

    Retries are not handled here; callers wrap each call with a RetryPolicy.
    Every non-2xx response is raised as SpotifyAPIError carrying the status,
    the decoded error body and any Retry-After hint.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = SPOTIFY_API_BASE_URL,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout, follow_redirects=False)

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "SpotifyClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -----------------
    # HTTP helpers
    # -----------------

    def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make a Web API request and return parsed JSON ({} for an empty body)."""

        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            resp = self._http.request(method.upper(), url, params=query or None, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise SpotifyAPIError(f"Spotify API request failed: {e}") from e

        if resp.status_code >= 400:
            payload = self._error_payload(resp)
            raise SpotifyAPIError(
                f"Spotify API error {resp.status_code} on {method.upper()} {path}: {self._error_message(payload)}",
                status=resp.status_code,
                payload=payload,
                retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            )

        if not resp.content:
            return {}

        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise SpotifyAPIError(
                f"Spotify API response was not JSON (status {resp.status_code}): {resp.text}",
                status=resp.status_code,
            ) from e

    @staticmethod
    def _error_payload(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except json.JSONDecodeError:
            return resp.text

    @staticmethod
    def _error_message(payload: Any) -> str:
        # Spotify error shape: {"error": {"status": 400, "message": "..."}}
        if isinstance(payload, dict):
            err = payload.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
            if isinstance(err, str):
                return payload.get("error_description") or err
        return str(payload or "no details")

    # -----------------
    # Playlist endpoints
    # -----------------

    def get_playlist(self, playlist_id: str, *, fields: str = "id,name") -> Dict[str, Any]:
        return self.request_json("GET", f"/playlists/{playlist_id}", params={"fields": fields})

    def get_playlist_items(
        self,
        playlist_id: str,
        *,
        limit: int = 100,
        offset: int = 0,
        fields: Optional[str] = "items(track(uri)),next",
    ) -> Dict[str, Any]:
        return self.request_json(
            "GET",
            f"/playlists/{playlist_id}/tracks",
            params={"limit": limit, "offset": offset, "fields": fields},
        )

    def replace_playlist_items(self, playlist_id: str, uris: List[str]) -> Dict[str, Any]:
        return self.request_json("PUT", f"/playlists/{playlist_id}/tracks", body={"uris": list(uris)})

    def add_playlist_items(self, playlist_id: str, uris: List[str]) -> Dict[str, Any]:
        return self.request_json("POST", f"/playlists/{playlist_id}/tracks", body={"uris": list(uris)})
