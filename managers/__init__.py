# Managers module exports
from managers.reverse_manager import ReverseResult, parse_playlist_id, reverse_playlist

__all__ = [
    "ReverseResult",
    "parse_playlist_id",
    "reverse_playlist",
]
