import json
import os
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .errors import StorageError


DEFAULT_TOKEN_CACHE_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".spotify-token.json"
)


@dataclass(frozen=True)
class TokenInfo:
    """Token record persisted by TokenManager."""

    access_token: str
    token_type: str
    expires_at: float
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional, usually omitted on refresh)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in", 0))

        return TokenInfo(
            access_token=str(payload.get("access_token", "")),
            token_type=str(payload.get("token_type", "Bearer")),
            expires_at=now_ts + expires_in,
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
        )

    def with_refresh_token(self, refresh_token: Optional[str]) -> "TokenInfo":
        return replace(self, refresh_token=refresh_token)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }


class TokenManager:
    """Reads and writes the token record as a single JSON file.

    Writes replace the whole file. There is no locking: one invocation at a
    time is expected to touch the cache.
    """

    def __init__(self, *, cache_path: str = DEFAULT_TOKEN_CACHE_PATH):
        self.cache_path = cache_path

    def ensure_cache_dir(self) -> None:
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def load(self) -> Optional[TokenInfo]:
        """Return the cached token, None if there is no cache file.

        Raises StorageError if the file exists but does not hold a token record.
        """
        if not os.path.exists(self.cache_path):
            return None

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Could not read token cache {self.cache_path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"Token cache {self.cache_path} does not contain an object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise StorageError(f"Token cache {self.cache_path} has no access_token")

        expires_at = data.get("expires_at")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise StorageError(f"Token cache {self.cache_path} has no numeric expires_at")

        refresh_token = data.get("refresh_token")
        return TokenInfo(
            access_token=access_token,
            token_type=str(data.get("token_type") or "Bearer"),
            expires_at=float(expires_at),
            refresh_token=str(refresh_token) if refresh_token else None,
            scope=data.get("scope"),
        )

    def save(self, token: TokenInfo) -> None:
        """Persist the token record, replacing any previous file."""
        try:
            self.ensure_cache_dir()
            with open(self.cache_path, "w", encoding="utf-8") as f:
                json.dump(token.to_dict(), f, indent=2)
        except OSError as e:
            raise StorageError(f"Could not write token cache {self.cache_path}: {e}") from e

    def clear(self) -> bool:
        if os.path.exists(self.cache_path):
            os.remove(self.cache_path)
            return True
        return False

    @staticmethod
    def is_expired(token: TokenInfo, *, skew_seconds: int = 60, now: Optional[float] = None) -> bool:
        now_ts = time.time() if now is None else now
        return now_ts >= float(token.expires_at) - float(skew_seconds)
