import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from config import require_credentials
from spotify_api.auth import SpotifyAuth
from spotify_api.client import SpotifyClient
from spotify_api.errors import ConfigError
from spotify_api.playlists import PlaylistReader, PlaylistWriter
from spotify_api.retry import RetryPolicy
from utils.logger import log_debug, log_info, log_success

PLAYLIST_ID_PATTERNS = [
    re.compile(r"^https?://open\.spotify\.com/(?:[\w-]+/)?playlist/([A-Za-z0-9]+)"),
    re.compile(r"^spotify:playlist:([A-Za-z0-9]+)$"),
]


@dataclass
class ReverseResult:
    source_id: str
    destination_id: str
    source_count: int
    added: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def parse_playlist_id(value: str) -> str:
    """Accept a bare id, a spotify:playlist: URI or an open.spotify.com URL."""
    value = str(value or "").strip()
    for pattern in PLAYLIST_ID_PATTERNS:
        match = pattern.match(value)
        if match:
            return match.group(1)
    return value


def reverse_playlist(
    config: Dict[str, Any],
    source: str,
    destination: str,
    *,
    force_refresh: bool = False,
    auth: Optional[SpotifyAuth] = None,
    http_client: Optional[httpx.Client] = None,
    retry: Optional[RetryPolicy] = None,
) -> ReverseResult:
    """Make the destination playlist hold the source's tracks in reverse order.

    Steps: validate -> authenticate -> verify both playlists -> read ->
    reverse -> clear and rewrite the destination.
    """

    source_id = parse_playlist_id(source)
    destination_id = parse_playlist_id(destination)

    log_info("Starting playlist reversal process...")
    log_info(f"Source playlist: {source_id}")
    log_info(f"Destination playlist: {destination_id}")

    if not source_id or not destination_id:
        raise ConfigError("Both source and destination playlist IDs are required")
    if source_id == destination_id:
        raise ConfigError("Source and destination playlists must be different")

    require_credentials(config)

    auth = auth or SpotifyAuth(config, http_client=http_client)
    log_debug("Debug info:")
    log_debug(f"- Client ID: {auth.client_id[:5]}...")
    log_debug(f"- Redirect URI: {auth.redirect_uri}")
    log_debug(f"- Scopes: {auth.scope}")
    log_debug(f"- Token file: {auth.token_manager.cache_path}")

    access_token = auth.get_access_token(force_refresh=force_refresh)

    retry = retry or RetryPolicy.from_config(config)
    page_size = int(config.get("page_size", 100))

    with SpotifyClient(
        access_token,
        base_url=config.get("spotify_api_base_url") or "https://api.spotify.com/v1",
        http_client=http_client,
        timeout=float(config.get("http_timeout", 30)),
    ) as client:
        reader = PlaylistReader(client, page_size=page_size, retry=retry)
        writer = PlaylistWriter(client, page_size=page_size, retry=retry)

        reader.verify_playlist(source_id, "Source")
        reader.verify_playlist(destination_id, "Destination")

        source_tracks = reader.fetch_all_tracks(source_id)
        log_info(f"Retrieved {len(source_tracks)} tracks from source playlist")

        reversed_tracks = list(reversed(source_tracks))
        report = writer.replace_tracks(destination_id, reversed_tracks)

    if report.skipped:
        log_info(f"{len(report.skipped)} tracks could not be added and were skipped")
    log_success("Playlist reversal completed successfully!")

    return ReverseResult(
        source_id=source_id,
        destination_id=destination_id,
        source_count=len(source_tracks),
        added=report.added,
        skipped=report.skipped,
    )
