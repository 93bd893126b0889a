"""Data models for release-stats."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from .errors import MalformedReleaseError
from .workdays import is_working_day, iso_week, parse_timestamp, to_utc_date


class Timeframe(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ReleaseType(str, Enum):
    REGULAR = "regular"
    PRERELEASE = "prerelease"
    DRAFT = "draft"


class ExportStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportStatus.COMPLETED, ExportStatus.FAILED)


@dataclass(frozen=True)
class Release:
    """A published release of one repository.

    Calendar fields are derived from ``published_at`` on access and are
    never stored separately.
    """

    repository: str
    tag_name: str
    name: str
    created_at: datetime
    published_at: datetime
    author: str
    draft: bool = False
    prerelease: bool = False
    html_url: str | None = None

    @classmethod
    def from_api(cls, repository: str, payload: dict[str, Any]) -> Release:
        tag_name = payload.get("tag_name")
        published = payload.get("published_at")
        if not tag_name or not published:
            raise MalformedReleaseError(
                f"{repository}: release {payload.get('id', '?')} has no "
                f"tag_name or published_at"
            )
        try:
            published_at = parse_timestamp(published)
            created_at = (
                parse_timestamp(payload["created_at"])
                if payload.get("created_at")
                else published_at
            )
        except ValueError as exc:
            raise MalformedReleaseError(
                f"{repository}: release {tag_name} has an invalid timestamp"
            ) from exc
        author = payload.get("author") or {}
        return cls(
            repository=repository,
            tag_name=tag_name,
            name=payload.get("name") or tag_name,
            created_at=created_at,
            published_at=published_at,
            author=author.get("login", "unknown"),
            draft=bool(payload.get("draft", False)),
            prerelease=bool(payload.get("prerelease", False)),
            html_url=payload.get("html_url"),
        )

    @property
    def published_date(self) -> date:
        return to_utc_date(self.published_at)

    @property
    def year(self) -> int:
        return self.published_date.year

    @property
    def month(self) -> int:
        return self.published_date.month

    @property
    def day(self) -> int:
        return self.published_date.day

    @property
    def week_year(self) -> int:
        return iso_week(self.published_at)[0]

    @property
    def week(self) -> int:
        return iso_week(self.published_at)[1]

    @property
    def is_working_day(self) -> bool:
        return is_working_day(self.published_at)

    @property
    def release_type(self) -> ReleaseType:
        if self.draft:
            return ReleaseType.DRAFT
        if self.prerelease:
            return ReleaseType.PRERELEASE
        return ReleaseType.REGULAR


@dataclass
class AuthorStat:
    author: str
    commits: int
    additions: int = 0
    deletions: int = 0
    files_changed: int = 0


@dataclass
class ReleaseComparison:
    """Diff between a release and its predecessor."""

    total_commits: int = 0
    total_additions: int = 0
    total_deletions: int = 0
    total_files_changed: int = 0
    author_stats: list[AuthorStat] = field(default_factory=list)

    @classmethod
    def empty(cls) -> ReleaseComparison:
        return cls()


@dataclass
class ReleaseStat:
    repository: str
    tag_name: str
    name: str
    published_at: datetime
    compare_with_previous: ReleaseComparison


@dataclass
class RepositoryReleaseStats:
    repository: str
    releases: list[ReleaseStat] = field(default_factory=list)


@dataclass
class YearlyStatistic:
    repository: str
    year: int
    release_count: int
    working_day_count: int

    @property
    def period(self) -> str:
        return f"{self.year}"


@dataclass
class MonthlyStatistic:
    repository: str
    year: int
    month: int
    release_count: int
    working_day_count: int

    @property
    def period(self) -> str:
        return f"{self.year}-{self.month:02d}"


@dataclass
class WeeklyStatistic:
    # year is the ISO week-year, which can differ from the calendar year
    repository: str
    year: int
    week: int
    release_count: int
    working_day_count: int

    @property
    def period(self) -> str:
        return f"{self.year}-W{self.week:02d}"


@dataclass
class DailyStatistic:
    repository: str
    date: str
    release_count: int
    is_working_day: bool

    @property
    def period(self) -> str:
        return self.date


@dataclass
class WorkingDaysBetweenReleases:
    repository: str
    release_tag: str
    previous_tag: str
    published_at: datetime
    working_days_since_previous_release: int


@dataclass
class ComparisonStatistic:
    metric: str
    first_repository: str
    second_repository: str
    first_value: float
    second_value: float
    difference: float
    percentage_difference: float


@dataclass
class StatisticsReport:
    release_count: int
    working_day_release_count: int
    yearly_stats: list[YearlyStatistic] = field(default_factory=list)
    monthly_stats: list[MonthlyStatistic] = field(default_factory=list)
    weekly_stats: list[WeeklyStatistic] = field(default_factory=list)
    daily_stats: list[DailyStatistic] = field(default_factory=list)
    working_days_between_releases: list[WorkingDaysBetweenReleases] = field(
        default_factory=list
    )
    comparison_stats: list[ComparisonStatistic] = field(default_factory=list)


@dataclass(frozen=True)
class SortSpec:
    field: str
    direction: str = "desc"


@dataclass(frozen=True)
class DashboardFilterParams:
    timeframe: Timeframe = Timeframe.DAILY
    start_date: datetime | None = None
    end_date: datetime | None = None
    repositories: tuple[str, ...] | None = None
    release_types: tuple[ReleaseType, ...] | None = None
    sort: SortSpec | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeframe": self.timeframe.value,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "repositories": list(self.repositories) if self.repositories else None,
            "release_types": (
                [t.value for t in self.release_types] if self.release_types else None
            ),
            "sort": asdict(self.sort) if self.sort else None,
        }

    def cache_key(self) -> str:
        raw = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(raw.encode()).hexdigest()


@dataclass
class TimeSeriesPoint:
    date: str
    repository: str
    release_count: int
    commit_count: int = 0
    contributor_count: int = 0


@dataclass
class RecentRelease:
    repository: str
    tag_name: str
    name: str
    published_at: datetime
    commit_count: int
    additions: int
    deletions: int
    files_changed: int


@dataclass
class TopContributor:
    author: str
    commits: int
    additions: int
    deletions: int
    files_changed: int
    contribution_percentage: float


@dataclass
class SummaryStats:
    total_releases: int
    total_commits: int = 0
    total_contributors: int = 0
    average_commits_per_release: float = 0.0
    average_time_to_release: float = 0.0
    total_additions: int = 0
    total_deletions: int = 0
    total_files_changed: int = 0
    recent_releases: list[RecentRelease] = field(default_factory=list)
    top_contributors: list[TopContributor] = field(default_factory=list)


@dataclass
class TopRepository:
    name: str
    release_count: int
    commit_count: int = 0


@dataclass
class ReleaseTypeBreakdown:
    type: str
    count: int
    percentage: float


@dataclass
class DashboardData:
    time_series_data: list[TimeSeriesPoint]
    summary_stats: SummaryStats
    top_repositories: list[TopRepository]
    release_type_breakdown: list[ReleaseTypeBreakdown]


@dataclass(frozen=True)
class ExportOptions:
    include_time_series_data: bool = True
    include_repository_breakdown: bool = True
    include_release_type_breakdown: bool = True


@dataclass
class ExportJob:
    id: str
    params: DashboardFilterParams
    options: ExportOptions
    start_time: float
    status: ExportStatus = ExportStatus.PENDING
    progress: int = 0
    estimated_time_remaining: float | None = None
    download_url: str | None = None
    file_path: str | None = None
    error: str | None = None
    finished_at: float | None = None

    def snapshot(self) -> dict[str, Any]:
        """The client-facing view of this job."""
        return {
            "export_id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "estimated_time_remaining": self.estimated_time_remaining,
            "download_url": self.download_url,
            "error": self.error,
        }
