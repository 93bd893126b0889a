"""Release statistics: calendar rollups, release gaps and comparisons.

Every function here is pure. Buckets are sparse (only periods that contain
at least one release are emitted) and come out in first-encounter order.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Hashable, Iterable, Sequence, TypeVar

from .models import (
    AuthorStat,
    ComparisonStatistic,
    DailyStatistic,
    MonthlyStatistic,
    Release,
    StatisticsReport,
    WeeklyStatistic,
    WorkingDaysBetweenReleases,
    YearlyStatistic,
)
from .workdays import working_days_between

K = TypeVar("K", bound=Hashable)


def _group(releases: Iterable[Release], key: Callable[[Release], K]) -> dict[K, list[Release]]:
    groups: dict[K, list[Release]] = {}
    for release in releases:
        groups.setdefault(key(release), []).append(release)
    return groups


def _working_day_count(releases: Iterable[Release]) -> int:
    return sum(1 for r in releases if r.is_working_day)


def sort_releases(releases: Iterable[Release], newest_first: bool = False) -> list[Release]:
    """Order releases by publication time, ties broken by tag name."""
    return sorted(
        releases, key=lambda r: (r.published_at, r.tag_name), reverse=newest_first
    )


def calculate_yearly_statistics(releases: Iterable[Release]) -> list[YearlyStatistic]:
    groups = _group(releases, lambda r: (r.repository, r.year))
    return [
        YearlyStatistic(
            repository=repository,
            year=year,
            release_count=len(items),
            working_day_count=_working_day_count(items),
        )
        for (repository, year), items in groups.items()
    ]


def calculate_monthly_statistics(releases: Iterable[Release]) -> list[MonthlyStatistic]:
    groups = _group(releases, lambda r: (r.repository, r.year, r.month))
    return [
        MonthlyStatistic(
            repository=repository,
            year=year,
            month=month,
            release_count=len(items),
            working_day_count=_working_day_count(items),
        )
        for (repository, year, month), items in groups.items()
    ]


def calculate_weekly_statistics(releases: Iterable[Release]) -> list[WeeklyStatistic]:
    groups = _group(releases, lambda r: (r.repository, r.week_year, r.week))
    return [
        WeeklyStatistic(
            repository=repository,
            year=year,
            week=week,
            release_count=len(items),
            working_day_count=_working_day_count(items),
        )
        for (repository, year, week), items in groups.items()
    ]


def calculate_daily_statistics(releases: Iterable[Release]) -> list[DailyStatistic]:
    groups = _group(releases, lambda r: (r.repository, r.published_date))
    return [
        DailyStatistic(
            repository=repository,
            date=day.isoformat(),
            release_count=len(items),
            is_working_day=items[0].is_working_day,
        )
        for (repository, day), items in groups.items()
    ]


def calculate_working_day_release_count(releases: Iterable[Release]) -> int:
    return _working_day_count(releases)


def calculate_working_days_between_releases(
    releases: Iterable[Release],
) -> list[WorkingDaysBetweenReleases]:
    """Working-day span from each release back to its predecessor.

    The oldest release of every repository has no predecessor and is not
    part of the output.
    """
    results: list[WorkingDaysBetweenReleases] = []
    for repository, items in _group(releases, lambda r: r.repository).items():
        ordered = sort_releases(items)
        for previous, current in zip(ordered, ordered[1:]):
            results.append(
                WorkingDaysBetweenReleases(
                    repository=repository,
                    release_tag=current.tag_name,
                    previous_tag=previous.tag_name,
                    published_at=current.published_at,
                    working_days_since_previous_release=working_days_between(
                        previous.published_at, current.published_at
                    ),
                )
            )
    return results


def _percentage_difference(first: float, second: float) -> float:
    if second == 0:
        return 0
    return (first - second) / second * 100


def _comparison_row(
    metric: str, first: str, second: str, first_value: float, second_value: float
) -> ComparisonStatistic:
    return ComparisonStatistic(
        metric=metric,
        first_repository=first,
        second_repository=second,
        first_value=first_value,
        second_value=second_value,
        difference=first_value - second_value,
        percentage_difference=_percentage_difference(first_value, second_value),
    )


def calculate_comparison_statistics(
    releases: Sequence[Release], first: str, second: str
) -> list[ComparisonStatistic]:
    """Compare release cadence of two repositories.

    Percentages are relative to the second repository and are 0 when its
    value is 0.
    """
    first_releases = [r for r in releases if r.repository == first]
    second_releases = [r for r in releases if r.repository == second]

    first_monthly = calculate_monthly_statistics(first_releases)
    second_monthly = calculate_monthly_statistics(second_releases)

    def _average(stats: list[MonthlyStatistic]) -> float:
        if not stats:
            return 0
        return sum(s.release_count for s in stats) / len(stats)

    def _maximum(stats: list[MonthlyStatistic]) -> int:
        return max((s.release_count for s in stats), default=0)

    return [
        _comparison_row(
            "total_releases", first, second, len(first_releases), len(second_releases)
        ),
        _comparison_row(
            "avg_releases_per_month",
            first,
            second,
            _average(first_monthly),
            _average(second_monthly),
        ),
        _comparison_row(
            "max_releases_in_month",
            first,
            second,
            _maximum(first_monthly),
            _maximum(second_monthly),
        ),
    ]


def aggregate_author_stats(groups: Iterable[Iterable[AuthorStat]]) -> list[AuthorStat]:
    """Sum per-author counts across releases, most commits first.

    Authors with equal commit counts keep the order in which they were first
    seen.
    """
    totals: dict[str, AuthorStat] = {}
    for stats in groups:
        for s in stats:
            existing = totals.get(s.author)
            if existing is None:
                totals[s.author] = AuthorStat(
                    author=s.author,
                    commits=s.commits,
                    additions=s.additions,
                    deletions=s.deletions,
                    files_changed=s.files_changed,
                )
            else:
                existing.commits += s.commits
                existing.additions += s.additions
                existing.deletions += s.deletions
                existing.files_changed += s.files_changed
    return sorted(totals.values(), key=lambda a: a.commits, reverse=True)


def count_by_repository(releases: Iterable[Release]) -> dict[str, int]:
    counts: dict[str, int] = defaultdict(int)
    for release in releases:
        counts[release.repository] += 1
    return dict(counts)


def calculate_all_statistics(
    releases: Sequence[Release], comparison_pair: tuple[str, str] | None = None
) -> StatisticsReport:
    report = StatisticsReport(
        release_count=len(releases),
        working_day_release_count=calculate_working_day_release_count(releases),
        yearly_stats=calculate_yearly_statistics(releases),
        monthly_stats=calculate_monthly_statistics(releases),
        weekly_stats=calculate_weekly_statistics(releases),
        daily_stats=calculate_daily_statistics(releases),
        working_days_between_releases=calculate_working_days_between_releases(releases),
    )
    if comparison_pair is not None:
        report.comparison_stats = calculate_comparison_statistics(
            releases, *comparison_pair
        )
    return report
