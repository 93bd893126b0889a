"""CSV statistic reports written to a directory, one file per report."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any, Iterable, Sequence

from .models import Release
from .statistics import (
    calculate_comparison_statistics,
    calculate_daily_statistics,
    calculate_monthly_statistics,
    calculate_weekly_statistics,
    calculate_working_days_between_releases,
    calculate_yearly_statistics,
)

logger = logging.getLogger(__name__)


def _short_name(repository: str) -> str:
    return repository.rsplit("/", 1)[-1].replace("-", "_")


def _write_csv(path: Path, header: Sequence[str], rows: Iterable[Sequence[Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


def write_all_releases(releases: Sequence[Release], output_dir: Path) -> Path:
    return _write_csv(
        output_dir / "all_releases.csv",
        ["repository", "tag_name", "name", "published_at", "created_at", "author", "is_working_day"],
        (
            [
                r.repository,
                r.tag_name,
                r.name,
                r.published_at.isoformat(),
                r.created_at.isoformat(),
                r.author,
                r.is_working_day,
            ]
            for r in releases
        ),
    )


def write_yearly_statistics(releases: Sequence[Release], output_dir: Path) -> Path:
    return _write_csv(
        output_dir / "yearly_statistics.csv",
        ["repository", "year", "release_count", "working_day_count"],
        (
            [s.repository, s.year, s.release_count, s.working_day_count]
            for s in calculate_yearly_statistics(releases)
        ),
    )


def write_monthly_statistics(releases: Sequence[Release], output_dir: Path) -> Path:
    return _write_csv(
        output_dir / "monthly_statistics.csv",
        ["repository", "year", "month", "release_count", "working_day_count"],
        (
            [s.repository, s.year, s.month, s.release_count, s.working_day_count]
            for s in calculate_monthly_statistics(releases)
        ),
    )


def write_weekly_statistics(releases: Sequence[Release], output_dir: Path) -> Path:
    return _write_csv(
        output_dir / "weekly_statistics.csv",
        ["repository", "year", "week", "release_count", "working_day_count"],
        (
            [s.repository, s.year, s.week, s.release_count, s.working_day_count]
            for s in calculate_weekly_statistics(releases)
        ),
    )


def write_daily_statistics(releases: Sequence[Release], output_dir: Path) -> Path:
    return _write_csv(
        output_dir / "daily_statistics.csv",
        ["repository", "date", "release_count", "is_working_day"],
        (
            [s.repository, s.date, s.release_count, s.is_working_day]
            for s in calculate_daily_statistics(releases)
        ),
    )


def write_comparison_statistics(
    releases: Sequence[Release], output_dir: Path, first: str, second: str
) -> Path:
    return _write_csv(
        output_dir / "comparison_statistics.csv",
        [
            "metric",
            f"{_short_name(first)}_value",
            f"{_short_name(second)}_value",
            "difference",
            "percentage_difference",
        ],
        (
            [s.metric, s.first_value, s.second_value, s.difference, s.percentage_difference]
            for s in calculate_comparison_statistics(releases, first, second)
        ),
    )


def write_working_days_between_releases(
    releases: Sequence[Release], output_dir: Path
) -> Path:
    return _write_csv(
        output_dir / "working_days_between_releases.csv",
        ["repository", "release_tag", "previous_tag", "working_days_since_previous_release"],
        (
            [s.repository, s.release_tag, s.previous_tag, s.working_days_since_previous_release]
            for s in calculate_working_days_between_releases(releases)
        ),
    )


def generate_all_reports(
    releases: Sequence[Release],
    output_dir: Path,
    comparison_pair: tuple[str, str] | None = None,
) -> dict[str, Path]:
    """Write every report; the comparison needs exactly two repositories."""
    output_dir = Path(output_dir)
    paths = {
        "all_releases": write_all_releases(releases, output_dir),
        "yearly_stats": write_yearly_statistics(releases, output_dir),
        "monthly_stats": write_monthly_statistics(releases, output_dir),
        "weekly_stats": write_weekly_statistics(releases, output_dir),
        "daily_stats": write_daily_statistics(releases, output_dir),
        "working_days_between_releases": write_working_days_between_releases(
            releases, output_dir
        ),
    }
    if comparison_pair is not None:
        paths["comparison_stats"] = write_comparison_statistics(
            releases, output_dir, *comparison_pair
        )
    logger.info("Wrote %d reports to %s", len(paths), output_dir)
    return paths
