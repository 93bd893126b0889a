"""GitHub API rate limit monitoring."""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

logger = logging.getLogger(__name__)

MAX_WAIT_SECONDS = 3600


def seconds_until_reset(response: httpx.Response) -> float:
    """Seconds until ``X-RateLimit-Reset``, plus one second of slack."""
    reset_at = response.headers.get("X-RateLimit-Reset")
    if reset_at is None:
        return 1.0
    wait_seconds = max(0.0, float(reset_at) - time.time()) + 1
    return min(wait_seconds, MAX_WAIT_SECONDS)


def is_quota_exhausted(response: httpx.Response) -> bool:
    """True when the response rejects a request because no quota is left."""
    return (
        response.status_code in (403, 429)
        and response.headers.get("X-RateLimit-Remaining") == "0"
    )


class RateLimitMonitor:
    """Monitors GitHub API rate limit from response headers."""

    def __init__(self, threshold: int = 0) -> None:
        self._remaining: int | None = None
        self._reset_at: float | None = None
        self._threshold = threshold

    @property
    def remaining(self) -> int | None:
        return self._remaining

    def update(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        reset_at = response.headers.get("X-RateLimit-Reset")
        if remaining is not None:
            self._remaining = int(remaining)
        if reset_at is not None:
            self._reset_at = float(reset_at)

    async def wait_if_needed(self) -> None:
        if (
            self._remaining is not None
            and self._remaining <= self._threshold
            and self._reset_at is not None
        ):
            wait_seconds = max(0, self._reset_at - time.time()) + 1
            wait_seconds = min(wait_seconds, MAX_WAIT_SECONDS)
            logger.info(
                "Rate limit low (%d remaining), sleeping %.0fs until reset",
                self._remaining,
                wait_seconds,
            )
            await asyncio.sleep(wait_seconds)
            self.mark_reset()

    def mark_reset(self) -> None:
        """Forget the exhausted quota once its reset time has been waited out."""
        self._remaining = None
        self._reset_at = None
