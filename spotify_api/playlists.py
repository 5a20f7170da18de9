import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from utils.logger import log_debug, log_info, log_success, log_warning

from .client import SpotifyClient
from .errors import ClearError, FetchError, PlaylistVerificationError, SpotifyAPIError
from .retry import RetryPolicy

# Spotify's per-request maximum for playlist item reads and writes.
TRACKS_PER_REQUEST = 100

SPOTIFY_URI_PATTERN = re.compile(r"^spotify:(track|episode):[a-zA-Z0-9]{22}$")


def is_valid_spotify_uri(uri: Any) -> bool:
    """True for ``spotify:track:<id>`` / ``spotify:episode:<id>`` with a 22-char base62 id."""
    if not isinstance(uri, str) or not uri:
        return False
    return SPOTIFY_URI_PATTERN.match(uri) is not None


def chunked(items: List[str], size: int) -> List[List[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


@dataclass
class WriteReport:
    added: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class PlaylistReader:
    """Reads the full, ordered list of track URIs from a playlist."""

    def __init__(
        self,
        client: SpotifyClient,
        *,
        page_size: int = TRACKS_PER_REQUEST,
        retry: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.page_size = int(page_size)
        self.retry = retry or RetryPolicy()

    def verify_playlist(self, playlist_id: str, label: str = "Source") -> Dict[str, Any]:
        """Check that the playlist exists and the token can see it."""
        log_info(f"Verifying {label.lower()} playlist ({playlist_id})...")
        try:
            playlist = self.retry.call(lambda: self.client.get_playlist(playlist_id))
        except Exception as e:
            raise PlaylistVerificationError(f"{label} playlist verification failed: {e}") from e

        name = playlist.get("name") if isinstance(playlist, dict) else None
        log_success(f"{label} playlist verified" + (f": {name}" if name else ""))
        return playlist

    def fetch_all_tracks(self, playlist_id: str) -> List[str]:
        log_info("Fetching all tracks from source playlist...")
        try:
            uris = self._fetch_raw_uris(playlist_id)
        except Exception as e:
            raise FetchError(f"Failed to fetch tracks: {e}") from e

        valid = [uri for uri in uris if is_valid_spotify_uri(uri)]
        dropped = len(uris) - len(valid)
        if dropped:
            log_warning(f"Filtered out {dropped} invalid track URIs")
            for uri in uris:
                if not is_valid_spotify_uri(uri):
                    log_debug(f"Dropped invalid URI: {uri!r}")

        return valid

    def _fetch_raw_uris(self, playlist_id: str) -> List[Any]:
        uris: List[Any] = []
        offset = 0

        while True:
            page = self.retry.call(
                lambda: self.client.get_playlist_items(playlist_id, limit=self.page_size, offset=offset)
            )

            for item in page.get("items") or []:
                # Removed or unavailable tracks come back as {"track": null}.
                track = item.get("track") if isinstance(item, dict) else None
                if not isinstance(track, dict):
                    continue
                uris.append(track.get("uri"))

            if not page.get("next"):
                break

            offset += self.page_size
            log_info(f"Retrieved {len(uris)} tracks so far...")

        return uris


class PlaylistWriter:
    """Clears a playlist and refills it with URIs in the given order."""

    def __init__(
        self,
        client: SpotifyClient,
        *,
        page_size: int = TRACKS_PER_REQUEST,
        retry: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.page_size = int(page_size)
        self.retry = retry or RetryPolicy()

    def replace_tracks(self, playlist_id: str, uris: List[str]) -> WriteReport:
        log_info("Updating destination playlist...")
        try:
            self.retry.call(lambda: self.client.replace_playlist_items(playlist_id, []))
        except Exception as e:
            raise ClearError(f"Failed to clear destination playlist: {e}") from e
        log_success("Destination playlist cleared")

        report = WriteReport()
        total = len(uris)
        position = 0

        for batch in chunked(list(uris), self.page_size):
            log_debug(
                f"Adding batch of {len(batch)} tracks ({position} to {position + len(batch) - 1}); "
                f"first: {batch[0]}, last: {batch[-1]}"
            )
            try:
                self.retry.call(lambda: self.client.add_playlist_items(playlist_id, batch))
                report.added.extend(batch)
                position += len(batch)
                log_info(f"Added {position} of {total} tracks to destination playlist")
                continue
            except SpotifyAPIError as e:
                if e.status != 400 or len(batch) <= 1:
                    raise
                log_debug(f"Error adding tracks: {e.payload}")

            log_warning("Encountered an error. Trying to add tracks one by one...")
            self._add_one_by_one(playlist_id, batch, report)
            position += len(batch)
            log_info(f"Processed {position} of {total} tracks (some may have failed)")

        log_success("Destination playlist update completed")
        return report

    def _add_one_by_one(self, playlist_id: str, batch: List[str], report: WriteReport) -> None:
        for uri in batch:
            try:
                self.retry.call(lambda: self.client.add_playlist_items(playlist_id, [uri]))
            except Exception as e:
                log_warning(f"Failed to add track {uri}: {e}")
                log_debug(f"Error details: {getattr(e, 'payload', None)}")
                report.skipped.append(uri)
                continue

            report.added.append(uri)
            log_debug(f"Successfully added track: {uri}")
