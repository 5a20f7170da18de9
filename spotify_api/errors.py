from typing import Any, Optional


class ReversePlaylistError(Exception):
    """Base class for every error raised by this tool.

    ``payload`` holds the raw Spotify error body when one is available; it is
    only shown to the user in debug mode.
    """

    def __init__(self, message: str, *, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class ConfigError(ReversePlaylistError):
    """Missing credentials or invalid arguments."""


class MissingCredentialsError(ConfigError):
    pass


class StorageError(ReversePlaylistError):
    """Token cache file exists but cannot be read as a token record."""


# -----------------
# Authentication
# -----------------


class AuthError(ReversePlaylistError):
    """Base for failures of the OAuth flow."""


class StateMismatchError(AuthError):
    pass


class AuthorizationDeniedError(AuthError):
    pass


class MissingCodeError(AuthError):
    pass


class TokenExchangeError(AuthError):
    pass


class AuthorizationTimeoutError(AuthError):
    pass


class CallbackServerError(AuthError):
    pass


# -----------------
# Web API
# -----------------


class SpotifyAPIError(ReversePlaylistError):
    """A Web API call failed.

    ``status`` is None for transport-level failures (DNS, connection reset, ...).
    ``retry_after`` is the Retry-After hint in seconds, when the server sent one.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        payload: Any = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, payload=payload)
        self.status = status
        self.retry_after = retry_after


class RetryExhaustedError(ReversePlaylistError):
    def __init__(self, message: str, *, last_error: BaseException):
        super().__init__(message, payload=getattr(last_error, "payload", None))
        self.last_error = last_error


class PlaylistVerificationError(ReversePlaylistError):
    pass


class FetchError(ReversePlaylistError):
    pass


class ClearError(ReversePlaylistError):
    pass


def api_error_payload(error: Optional[BaseException]) -> Any:
    """Return the first API payload found along the exception's cause chain."""
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        payload = getattr(error, "payload", None)
        if payload is not None:
            return payload
        error = error.__cause__ or getattr(error, "last_error", None)
    return None
