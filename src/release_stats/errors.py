"""Exception types for release-stats.

Every class carries the HTTP status the API layer answers with, so callers
never need a separate mapping table.
"""

from __future__ import annotations


class ReleaseStatsError(Exception):
    """Base exception for all release-stats errors."""

    http_status = 500
    title = "Internal Server Error"


class ConfigurationError(ReleaseStatsError):
    """Raised when runtime configuration values are missing or invalid."""


class InvalidRepositoryError(ReleaseStatsError):
    """Raised when a repository identifier is not in ``owner/name`` form."""

    http_status = 400
    title = "Bad Request"


class InvalidFilterError(ReleaseStatsError):
    """Raised when dashboard or export filter parameters cannot be decoded."""

    http_status = 400
    title = "Bad Request"


class MalformedReleaseError(ReleaseStatsError):
    """Raised when an upstream release payload lacks required fields."""

    http_status = 502
    title = "Bad Gateway"


class UpstreamError(ReleaseStatsError):
    """Raised when the GitHub API fails after retries or rejects a request."""

    http_status = 502
    title = "Bad Gateway"

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class RepositoryNotFoundError(UpstreamError):
    """Raised on a 404 from the GitHub API."""

    http_status = 404
    title = "Not Found"


class AuthenticationError(UpstreamError):
    """Raised on a 401 from the GitHub API (bad or expired token)."""

    http_status = 401
    title = "Unauthorized"


class RateLimitExceededError(UpstreamError):
    """Raised when the API quota is still exhausted after waiting for resets."""

    http_status = 429
    title = "Too Many Requests"
