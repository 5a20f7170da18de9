"""Spotify Web API integration: OAuth, token cache and playlist read/write.

Used by managers/reverse_manager.py to rewrite a playlist in reverse order.
"""

from .auth import SpotifyAuth
from .client import SpotifyClient
from .playlists import PlaylistReader, PlaylistWriter, is_valid_spotify_uri
from .retry import RetryPolicy, with_retry
from .token_manager import TokenInfo, TokenManager

__all__ = [
    "SpotifyAuth",
    "SpotifyClient",
    "PlaylistReader",
    "PlaylistWriter",
    "is_valid_spotify_uri",
    "RetryPolicy",
    "with_retry",
    "TokenInfo",
    "TokenManager",
]
