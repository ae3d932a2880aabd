"""Domain errors and failure typing."""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for station directory failures."""

    error_code = "DIRECTORY_ERROR"


class ConfigError(DirectoryError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class RemoteFetchError(DirectoryError):
    """Raised when the remote table API cannot produce a complete result."""

    error_code = "REMOTE_FETCH_ERROR"

    def __init__(self, message: str, *, status: int | None = None, body: str | None = None, url: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.url = url


class FetchCancelledError(DirectoryError):
    """Raised when a caller-supplied cancellation signal stops a fetch."""

    error_code = "FETCH_CANCELLED"
