"""Release data access: cached release listings and release comparisons."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Sequence

from .cache import MemoryCache, RequestCoalescer
from .errors import InvalidRepositoryError, RepositoryNotFoundError
from .github.client import GitHubClient
from .models import (
    AuthorStat,
    Release,
    ReleaseComparison,
    ReleaseStat,
    RepositoryReleaseStats,
)
from .statistics import sort_releases

logger = logging.getLogger(__name__)


def parse_repository(identifier: str) -> tuple[str, str]:
    """Split ``owner/name``; anything else is a client error."""
    parts = identifier.strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidRepositoryError(
            f"Invalid repository '{identifier}'. Expected format: owner/repo"
        )
    return parts[0], parts[1]


def in_range(
    published_at: datetime, start: datetime | None, end: datetime | None
) -> bool:
    if start is not None and published_at < start:
        return False
    if end is not None and published_at > end:
        return False
    return True


def summarize_comparison(payload: dict[str, Any]) -> ReleaseComparison:
    """Reduce a GitHub compare payload to commit, line and author counts."""
    commits = payload.get("commits") or []
    files = payload.get("files") or []

    author_commits: dict[str, int] = {}
    for commit in commits:
        author = commit.get("author") or {}
        login = author.get("login")
        if not login:
            git_author = (commit.get("commit") or {}).get("author") or {}
            login = git_author.get("name", "unknown")
        author_commits[login] = author_commits.get(login, 0) + 1

    author_stats = [
        AuthorStat(author=name, commits=count) for name, count in author_commits.items()
    ]
    author_stats.sort(key=lambda a: a.commits, reverse=True)

    return ReleaseComparison(
        total_commits=len(commits),
        total_additions=sum(f.get("additions", 0) for f in files),
        total_deletions=sum(f.get("deletions", 0) for f in files),
        total_files_changed=len(files),
        author_stats=author_stats,
    )


class ReleaseService:
    """Fetches releases and comparisons for a fixed set of repositories.

    Holds three caches: raw releases per repository, computed comparisons
    per tag pair (in this service) and compare responses per URL (in the
    client). All of them live for the lifetime of the service object.
    """

    def __init__(
        self,
        client: GitHubClient,
        repositories: Sequence[str],
        cache_size: int | None = 1024,
    ) -> None:
        for repository in repositories:
            parse_repository(repository)
        self._client = client
        self._repositories = tuple(repositories)
        self._release_cache = MemoryCache(max_entries=cache_size)
        self._comparison_cache = MemoryCache(max_entries=cache_size)
        self._all_releases: list[Release] | None = None
        self._inflight = RequestCoalescer()

    @property
    def repositories(self) -> tuple[str, ...]:
        return self._repositories

    def clear(self) -> None:
        self._release_cache.clear()
        self._comparison_cache.clear()
        self._all_releases = None

    async def fetch_repository_releases(self, repository: str) -> list[Release]:
        """Releases of one repository; drafts without a publish date are skipped."""
        owner, repo = parse_repository(repository)
        key = f"{owner}/{repo}"
        cached = self._release_cache.get(key)
        if cached is not None:
            logger.debug("Using cached releases for %s", key)
            return cached
        return await self._inflight.run(
            f"releases:{key}", lambda: self._load_repository_releases(owner, repo)
        )

    async def _load_repository_releases(self, owner: str, repo: str) -> list[Release]:
        repository = f"{owner}/{repo}"
        payloads = await self._client.list_releases(owner, repo)
        releases = []
        for payload in payloads:
            if payload.get("draft") and not payload.get("published_at"):
                logger.debug("%s: skipping unpublished draft %s", repository, payload.get("tag_name"))
                continue
            releases.append(Release.from_api(repository, payload))
        self._release_cache.set(repository, releases)
        return releases

    async def fetch_all_releases(self) -> list[Release]:
        """Releases of every configured repository, memoized after the first call."""
        if self._all_releases is not None:
            return self._all_releases
        return await self._inflight.run("releases:*", self._load_all_releases)

    async def _load_all_releases(self) -> list[Release]:
        per_repository = await asyncio.gather(
            *(self.fetch_repository_releases(r) for r in self._repositories)
        )
        releases = [release for items in per_repository for release in items]
        self._all_releases = releases
        logger.info(
            "Cached %d releases from %d repositories",
            len(releases),
            len(self._repositories),
        )
        return releases

    async def fetch_release_comparison(
        self, repository: str, current_tag: str, previous_tag: str
    ) -> ReleaseComparison:
        owner, repo = parse_repository(repository)
        key = f"{owner}/{repo}/{previous_tag}...{current_tag}"
        cached = self._comparison_cache.get(key)
        if cached is not None:
            return cached
        return await self._inflight.run(
            f"compare:{key}",
            lambda: self._load_comparison(key, owner, repo, current_tag, previous_tag),
        )

    async def _load_comparison(
        self, key: str, owner: str, repo: str, current_tag: str, previous_tag: str
    ) -> ReleaseComparison:
        try:
            payload = await self._client.compare(owner, repo, previous_tag, current_tag)
        except RepositoryNotFoundError:
            logger.warning(
                "%s/%s: cannot compare %s...%s, tag missing upstream",
                owner,
                repo,
                previous_tag,
                current_tag,
            )
            return ReleaseComparison.empty()
        comparison = summarize_comparison(payload)
        self._comparison_cache.set(key, comparison)
        return comparison

    async def fetch_repository_release_stats(
        self,
        repository: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> RepositoryReleaseStats:
        """Releases in range, newest first, each compared with the next older one.

        The predecessor is taken from the date-filtered list, so the oldest
        release inside the range always gets an empty comparison.
        """
        parse_repository(repository)
        releases = await self.fetch_repository_releases(repository)
        in_window = [r for r in releases if in_range(r.published_at, start_date, end_date)]
        ordered = sort_releases(in_window, newest_first=True)

        async def _stat(index: int, release: Release) -> ReleaseStat:
            if index + 1 < len(ordered):
                comparison = await self.fetch_release_comparison(
                    repository, release.tag_name, ordered[index + 1].tag_name
                )
            else:
                comparison = ReleaseComparison.empty()
            return ReleaseStat(
                repository=repository,
                tag_name=release.tag_name,
                name=release.name,
                published_at=release.published_at,
                compare_with_previous=comparison,
            )

        stats = await asyncio.gather(*(_stat(i, r) for i, r in enumerate(ordered)))
        return RepositoryReleaseStats(repository=repository, releases=list(stats))
