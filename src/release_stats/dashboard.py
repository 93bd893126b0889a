"""Dashboard assembly: filtered releases, time series and summary statistics."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, Sequence

from .cache import MemoryCache, RequestCoalescer
from .errors import AuthenticationError, RateLimitExceededError
from .models import (
    DashboardData,
    DashboardFilterParams,
    RecentRelease,
    Release,
    ReleaseStat,
    ReleaseType,
    ReleaseTypeBreakdown,
    RepositoryReleaseStats,
    SortSpec,
    SummaryStats,
    Timeframe,
    TimeSeriesPoint,
    TopContributor,
    TopRepository,
)
from .releases import ReleaseService, in_range
from .statistics import (
    aggregate_author_stats,
    calculate_daily_statistics,
    calculate_monthly_statistics,
    calculate_weekly_statistics,
    calculate_working_days_between_releases,
    count_by_repository,
)
from .workdays import iso_week, to_utc_date

logger = logging.getLogger(__name__)

CACHE_TTL = 5 * 60  # seconds
RECENT_RELEASES = 5
TOP_CONTRIBUTORS = 10
TOP_REPOSITORY_SORT_FIELDS = frozenset({"name", "release_count", "commit_count"})
# failures that affect every repository alike and must reach the caller
FATAL_ERRORS = (AuthenticationError, RateLimitExceededError)


def filter_releases(
    releases: Iterable[Release], params: DashboardFilterParams
) -> list[Release]:
    """Apply date bounds (inclusive), repository and release-type filters."""
    filtered = [
        r for r in releases if in_range(r.published_at, params.start_date, params.end_date)
    ]
    if params.repositories:
        allowed = set(params.repositories)
        filtered = [r for r in filtered if r.repository in allowed]
    if params.release_types:
        types = set(params.release_types)
        filtered = [r for r in filtered if r.release_type in types]
    return filtered


def period_key(timeframe: Timeframe, stat: ReleaseStat | Release) -> str:
    """Time-series key of the period a release falls in."""
    day = to_utc_date(stat.published_at)
    if timeframe is Timeframe.MONTHLY:
        return f"{day.year}-{day.month:02d}"
    if timeframe is Timeframe.WEEKLY:
        week_year, week = iso_week(day)
        return f"{week_year}-W{week:02d}"
    return day.isoformat()


def _unique_release_stats(
    repository_stats: Iterable[RepositoryReleaseStats],
) -> list[ReleaseStat]:
    """Flatten per-repository stats, keeping one entry per repository and tag."""
    seen: set[tuple[str, str]] = set()
    unique: list[ReleaseStat] = []
    for repo_stats in repository_stats:
        for stat in repo_stats.releases:
            key = (stat.repository, stat.tag_name)
            if key in seen:
                continue
            seen.add(key)
            unique.append(stat)
    return unique


def _restrict_to_releases(
    repository_stats: Iterable[RepositoryReleaseStats], releases: Iterable[Release]
) -> list[RepositoryReleaseStats]:
    """Drop comparisons of releases that the active filters excluded."""
    wanted = {(r.repository, r.tag_name) for r in releases}
    return [
        RepositoryReleaseStats(
            repository=repo_stats.repository,
            releases=[
                s for s in repo_stats.releases if (s.repository, s.tag_name) in wanted
            ],
        )
        for repo_stats in repository_stats
    ]


def generate_time_series(
    releases: Sequence[Release],
    timeframe: Timeframe,
    repository_stats: Sequence[RepositoryReleaseStats] = (),
) -> list[TimeSeriesPoint]:
    if timeframe is Timeframe.MONTHLY:
        buckets = calculate_monthly_statistics(releases)
    elif timeframe is Timeframe.WEEKLY:
        buckets = calculate_weekly_statistics(releases)
    else:
        buckets = calculate_daily_statistics(releases)

    points = {
        (b.repository, b.period): TimeSeriesPoint(
            date=b.period, repository=b.repository, release_count=b.release_count
        )
        for b in buckets
    }

    contributors: dict[tuple[str, str], set[str]] = {}
    for stat in _unique_release_stats(repository_stats):
        key = (stat.repository, period_key(timeframe, stat))
        point = points.get(key)
        if point is None:
            continue
        point.commit_count += stat.compare_with_previous.total_commits
        authors = contributors.setdefault(key, set())
        authors.update(a.author for a in stat.compare_with_previous.author_stats)
    for key, authors in contributors.items():
        points[key].contributor_count = len(authors)

    return sorted(points.values(), key=lambda p: (p.date, p.repository))


def calculate_summary_stats(
    releases: Sequence[Release],
    repository_stats: Sequence[RepositoryReleaseStats] = (),
) -> SummaryStats:
    total_releases = len(releases)

    gaps = calculate_working_days_between_releases(releases)
    average_gap = (
        sum(g.working_days_since_previous_release for g in gaps) / len(gaps)
        if gaps
        else 0.0
    )

    stats = _unique_release_stats(repository_stats)
    comparisons = [s.compare_with_previous for s in stats]
    total_commits = sum(c.total_commits for c in comparisons)

    contributors = aggregate_author_stats(c.author_stats for c in comparisons)
    contributor_commits = sum(a.commits for a in contributors)

    recent = sorted(stats, key=lambda s: (s.published_at, s.tag_name), reverse=True)
    recent_releases = [
        RecentRelease(
            repository=s.repository,
            tag_name=s.tag_name,
            name=s.name,
            published_at=s.published_at,
            commit_count=s.compare_with_previous.total_commits,
            additions=s.compare_with_previous.total_additions,
            deletions=s.compare_with_previous.total_deletions,
            files_changed=s.compare_with_previous.total_files_changed,
        )
        for s in recent[:RECENT_RELEASES]
    ]

    top_contributors = [
        TopContributor(
            author=a.author,
            commits=a.commits,
            additions=a.additions,
            deletions=a.deletions,
            files_changed=a.files_changed,
            contribution_percentage=(
                a.commits / contributor_commits * 100 if contributor_commits else 0
            ),
        )
        for a in contributors[:TOP_CONTRIBUTORS]
    ]

    return SummaryStats(
        total_releases=total_releases,
        total_commits=total_commits,
        total_contributors=len(contributors),
        average_commits_per_release=(
            total_commits / total_releases if total_releases else 0.0
        ),
        average_time_to_release=average_gap,
        total_additions=sum(c.total_additions for c in comparisons),
        total_deletions=sum(c.total_deletions for c in comparisons),
        total_files_changed=sum(c.total_files_changed for c in comparisons),
        recent_releases=recent_releases,
        top_contributors=top_contributors,
    )


def calculate_top_repositories(
    releases: Sequence[Release],
    repository_stats: Sequence[RepositoryReleaseStats] = (),
    sort: SortSpec | None = None,
) -> list[TopRepository]:
    commits: dict[str, int] = {}
    for repo_stats in repository_stats:
        commits[repo_stats.repository] = sum(
            s.compare_with_previous.total_commits for s in repo_stats.releases
        )

    repositories = [
        TopRepository(name=name, release_count=count, commit_count=commits.get(name, 0))
        for name, count in count_by_repository(releases).items()
    ]

    field = "release_count"
    descending = True
    if sort is not None and sort.field in TOP_REPOSITORY_SORT_FIELDS:
        field = sort.field
        descending = sort.direction != "asc"
    repositories.sort(key=lambda r: getattr(r, field), reverse=descending)
    return repositories


def calculate_release_type_breakdown(releases: Sequence[Release]) -> list[ReleaseTypeBreakdown]:
    total = len(releases)
    if total == 0:
        return [ReleaseTypeBreakdown(type=ReleaseType.REGULAR.value, count=0, percentage=0)]

    counts = {t: 0 for t in ReleaseType}
    for release in releases:
        counts[release.release_type] += 1
    return [
        ReleaseTypeBreakdown(type=t.value, count=count, percentage=count / total * 100)
        for t, count in counts.items()
        if count > 0
    ]


def build_dashboard_data(
    releases: Sequence[Release],
    params: DashboardFilterParams,
    repository_stats: Sequence[RepositoryReleaseStats] = (),
) -> DashboardData:
    """Assemble the dashboard payload from already filtered releases."""
    repository_stats = _restrict_to_releases(repository_stats, releases)
    return DashboardData(
        time_series_data=generate_time_series(releases, params.timeframe, repository_stats),
        summary_stats=calculate_summary_stats(releases, repository_stats),
        top_repositories=calculate_top_repositories(releases, repository_stats, params.sort),
        release_type_breakdown=calculate_release_type_breakdown(releases),
    )


class DashboardService:
    """Builds dashboard payloads and caches them per filter set for a short TTL."""

    def __init__(
        self,
        release_service: ReleaseService,
        cache_ttl: float = CACHE_TTL,
        cache_size: int | None = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._releases = release_service
        self._cache = MemoryCache(ttl=cache_ttl, max_entries=cache_size, clock=clock)
        self._inflight = RequestCoalescer()

    async def get_dashboard_data(self, params: DashboardFilterParams) -> DashboardData:
        key = params.cache_key()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return await self._inflight.run(key, lambda: self._build_and_cache(key, params))

    async def _build_and_cache(
        self, key: str, params: DashboardFilterParams
    ) -> DashboardData:
        data, complete = await self._generate(params)
        if complete:
            self._cache.set(key, data)
        else:
            logger.info("Not caching dashboard data built without every repository's stats")
        return data

    async def generate_dashboard_data(self, params: DashboardFilterParams) -> DashboardData:
        """Build a fresh payload, bypassing the result cache."""
        data, _ = await self._generate(params)
        return data

    async def _generate(self, params: DashboardFilterParams) -> tuple[DashboardData, bool]:
        releases = await self._releases.fetch_all_releases()
        filtered = filter_releases(releases, params)
        repository_stats, complete = await self._collect_repository_stats(filtered, params)
        return build_dashboard_data(filtered, params, repository_stats), complete

    async def _collect_repository_stats(
        self, releases: Sequence[Release], params: DashboardFilterParams
    ) -> tuple[list[RepositoryReleaseStats], bool]:
        """Stats per repository, and whether none of them failed.

        Raises:
            AuthenticationError: If GitHub rejected the credentials.
            RateLimitExceededError: If the API quota stayed exhausted.
        """
        repositories = list(dict.fromkeys(r.repository for r in releases))
        results = await asyncio.gather(
            *(
                self._releases.fetch_repository_release_stats(
                    repository, params.start_date, params.end_date
                )
                for repository in repositories
            ),
            return_exceptions=True,
        )
        collected: list[RepositoryReleaseStats] = []
        complete = True
        for repository, result in zip(repositories, results):
            if isinstance(result, FATAL_ERRORS):
                raise result
            if isinstance(result, Exception):
                logger.warning("Error fetching release stats for %s: %s", repository, result)
                complete = False
                continue
            collected.append(result)
        return collected, complete

    def clear_cache(self) -> None:
        self._cache.clear()
