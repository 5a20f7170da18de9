import argparse
import json
import sys
from typing import List, Optional

from config import load_config, spotify_app_setup_instructions
from managers.reverse_manager import reverse_playlist
from spotify_api.errors import MissingCredentialsError, api_error_payload
from utils.logger import log_error, log_info, setup_logging

__version__ = "1.0.0"


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments, like any other error."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="spotify-reverse-playlist",
        description="Reverses a Spotify playlist into another playlist",
    )
    parser.add_argument("source", metavar="sourcePlaylistId", help="ID (or URI/URL) of the source playlist")
    parser.add_argument("destination", metavar="destPlaylistId", help="ID (or URI/URL) of the destination playlist")
    parser.add_argument("--refresh", action="store_true", help="Force refresh of the access token")
    parser.add_argument("--debug", action="store_true", help="Show debug information")
    parser.add_argument("--env-file", default=None, help="Load environment variables from this file instead of .env")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _format_payload(payload) -> str:
    if isinstance(payload, (dict, list)):
        return json.dumps(payload, indent=2)
    return str(payload)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)

    config = None
    try:
        config = load_config(args.env_file)
        reverse_playlist(config, args.source, args.destination, force_refresh=args.refresh)
    except KeyboardInterrupt:
        log_error("Interrupted.")
        return 1
    except Exception as e:
        log_error(f"Error: {e}")
        if isinstance(e, MissingCredentialsError):
            log_info(spotify_app_setup_instructions(redirect_uri=(config or {}).get("spotify_redirect_uri", "")))
        payload = api_error_payload(e)
        if args.debug and payload is not None:
            log_error(f"API Error: {_format_payload(payload)}")
        return 1

    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
