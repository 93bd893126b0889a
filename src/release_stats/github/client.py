"""GitHub REST API client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..cache import MemoryCache
from ..errors import (
    AuthenticationError,
    RateLimitExceededError,
    RepositoryNotFoundError,
    UpstreamError,
)
from .rate_limit import RateLimitMonitor, is_quota_exhausted, seconds_until_reset

logger = logging.getLogger(__name__)

BASE_URL = "https://api.github.com"
PAGE_SIZE = 100
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class GitHubClient:
    """Async GitHub REST API client with pagination, retries and rate limit support."""

    def __init__(
        self,
        token: str | None = None,
        concurrency: int = 5,
        no_cache: bool = False,
        base_url: str | None = None,
        verify_ssl: bool = True,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        max_rate_limit_waits: int = 5,
        cache_size: int | None = 1024,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url or BASE_URL,
            headers=headers,
            timeout=30.0,
            verify=verify_ssl,
        )
        self._rate_limit = RateLimitMonitor()
        self._semaphore = asyncio.Semaphore(concurrency)
        self._max_retries = max_retries
        self._initial_backoff = initial_backoff
        self._max_rate_limit_waits = max_rate_limit_waits
        # keyed by full request URL, historical comparisons never change
        self._cache: MemoryCache | None = (
            None if no_cache else MemoryCache(max_entries=cache_size)
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _get(
        self, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """GET with rate-limit waits and bounded exponential backoff."""
        retries_left = self._max_retries
        rate_limit_waits = 0
        delay = self._initial_backoff

        while True:
            try:
                async with self._semaphore:
                    await self._rate_limit.wait_if_needed()
                    response = await self._client.get(url, params=params)
                    self._rate_limit.update(response)
            except httpx.TransportError as exc:
                if retries_left <= 0:
                    raise UpstreamError(
                        f"GET {url} failed after {self._max_retries} retries: {exc}"
                    ) from exc
                retries_left -= 1
                logger.warning(
                    "GET %s failed (%s), retrying in %.0fs (%d retries left)",
                    url,
                    exc,
                    delay,
                    retries_left,
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if is_quota_exhausted(response):
                if rate_limit_waits >= self._max_rate_limit_waits:
                    raise RateLimitExceededError(
                        f"GitHub API rate limit still exceeded for {url}",
                        upstream_status=response.status_code,
                    )
                rate_limit_waits += 1
                wait_seconds = seconds_until_reset(response)
                logger.warning(
                    "Rate limit exceeded, waiting %.0fs before retrying %s",
                    wait_seconds,
                    url,
                )
                await asyncio.sleep(wait_seconds)
                self._rate_limit.mark_reset()
                continue

            status = response.status_code
            if status in RETRYABLE_STATUSES:
                if retries_left <= 0:
                    self._raise_for_status(url, response)
                retries_left -= 1
                logger.warning(
                    "GET %s returned %d, retrying in %.0fs (%d retries left)",
                    url,
                    status,
                    delay,
                    retries_left,
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue

            if status >= 400:
                self._raise_for_status(url, response)
            return response

    @staticmethod
    def _raise_for_status(url: str, response: httpx.Response) -> None:
        status = response.status_code
        if status == 401:
            raise AuthenticationError(
                "GitHub rejected the credentials. Check GITHUB_TOKEN.",
                upstream_status=status,
            )
        if status == 404:
            raise RepositoryNotFoundError(f"{url} not found", upstream_status=status)
        if status == 429:
            raise RateLimitExceededError(
                f"GitHub API rate limit exceeded for {url}", upstream_status=status
            )
        raise UpstreamError(f"GitHub API returned {status} for {url}", upstream_status=status)

    async def _cached_get_json(
        self, url: str, params: dict[str, Any] | None = None
    ) -> Any:
        """GET with response cache support. Returns parsed JSON."""
        key = MemoryCache.make_key(url, params)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Using cached API response for %s", url)
                return cached
        response = await self._get(url, params)
        data = response.json()
        if self._cache is not None:
            self._cache.set(key, data)
        return data

    async def _paginate(
        self, url: str, params: dict[str, Any] | None = None
    ) -> list[Any]:
        results: list[Any] = []
        params = dict(params or {})
        params.setdefault("per_page", PAGE_SIZE)
        next_url: str | None = url

        while next_url is not None:
            response = await self._get(next_url, params)
            data = response.json()
            if isinstance(data, list):
                if not data:
                    break
                results.extend(data)
            else:
                results.append(data)

            # Follow Link header for next page
            next_url = None
            link_header = response.headers.get("Link", "")
            for part in link_header.split(","):
                if 'rel="next"' in part:
                    next_url = part.split(";")[0].strip().strip("<>")
                    params = {}  # URL already contains params
                    break

        return results

    async def list_releases(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """List every release of a repository, newest first as GitHub returns them."""
        releases = await self._paginate(f"/repos/{owner}/{repo}/releases")
        logger.info("Fetched %d releases for %s/%s", len(releases), owner, repo)
        return releases

    async def compare(
        self, owner: str, repo: str, base: str, head: str
    ) -> dict[str, Any]:
        """Compare two refs of a repository (``base...head``)."""
        url = (
            f"/repos/{owner}/{repo}/compare/"
            f"{quote(base, safe='')}...{quote(head, safe='')}"
        )
        return await self._cached_get_json(url)
