import os
import urllib.parse
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from spotify_api.errors import ConfigError, MissingCredentialsError

PROGRAM_DIR = os.path.dirname(os.path.abspath(__file__))

# Default configuration values
DEFAULT_CONFIG = {
    # Credentials (from environment / .env)
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_redirect_uri": "http://localhost:8888/callback",
    "spotify_token_path": os.path.join(PROGRAM_DIR, ".spotify-token.json"),

    # Web API endpoints
    "spotify_api_base_url": "https://api.spotify.com/v1",
    "spotify_accounts_base_url": "https://accounts.spotify.com",

    # Paging / batching (Spotify's maximum per request)
    "page_size": 100,

    # Retry behavior
    "retry_attempts": 3,
    "retry_base_delay": 1.0,

    # Timeouts (seconds)
    "auth_timeout": 300,
    "http_timeout": 30,
}

# Environment variable -> config key
ENV_OVERRIDES = {
    "SPOTIFY_CLIENT_ID": "spotify_client_id",
    "SPOTIFY_CLIENT_SECRET": "spotify_client_secret",
    "SPOTIFY_REDIRECT_URI": "spotify_redirect_uri",
    "SPOTIFY_TOKEN_PATH": "spotify_token_path",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "spotify_client_id": {"type": str, "required": True},
    "spotify_client_secret": {"type": str, "required": True},
    "spotify_redirect_uri": {"type": str, "required": True, "http_url": True},
    "spotify_token_path": {"type": str, "required": True},

    "spotify_api_base_url": {"type": str, "required": True},
    "spotify_accounts_base_url": {"type": str, "required": True},

    "page_size": {"type": int, "required": True, "min": 1, "max": 100},
    "retry_attempts": {"type": int, "required": True, "min": 1, "max": 10},
    "retry_base_delay": {"type": (int, float), "required": True, "min": 0, "max": 60},
    "auth_timeout": {"type": (int, float), "required": False, "min": 1, "max": 3600},
    "http_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
}


def load_config(env_file: Optional[str] = None) -> Dict[str, Any]:
    """Build the config from defaults, a .env file and the process environment.

    Variables already set in the environment win over the .env file.
    Raises ConfigError if a resulting value fails validation.
    """
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigError(f"Env file {env_file} not found.")
        load_dotenv(env_file)
    else:
        load_dotenv()

    config = DEFAULT_CONFIG.copy()
    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None and value.strip():
            config[key] = value.strip()

    is_valid, errors = validate_config(config)
    if not is_valid:
        raise ConfigError(f"Invalid configuration: {'; '.join(errors)}")

    return config


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; never accept it for numeric fields
        expected_type = rules.get("type")
        if expected_type and (not isinstance(value, expected_type) or isinstance(value, bool)):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        if rules.get("http_url"):
            parsed = urllib.parse.urlparse(value)
            if parsed.scheme != "http" or not parsed.hostname:
                errors.append(f"Field '{key}' must be an http://host:port/path URL, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def require_credentials(config: Dict[str, Any]) -> None:
    """Fail fast when the Spotify app credentials are not configured."""
    missing = [
        env_name
        for env_name, key in ENV_OVERRIDES.items()
        if key in ("spotify_client_id", "spotify_client_secret") and not str(config.get(key, "")).strip()
    ]
    if missing:
        raise MissingCredentialsError(
            f"{' and '.join(missing)} must be set in environment variables or .env file"
        )


def spotify_app_setup_instructions(*, redirect_uri: str = "http://localhost:8888/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://localhost:8888/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Put the Client ID and Client Secret in .env as SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET\n\n"
        "Notes:\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
        "- Delete the token file to force a fresh browser login.\n"
    )
