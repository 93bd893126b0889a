"""Tests for the renderer module."""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone

from release_stats.models import (
    AuthorStat,
    DashboardData,
    RecentRelease,
    ReleaseComparison,
    ReleaseStat,
    ReleaseTypeBreakdown,
    RepositoryReleaseStats,
    SummaryStats,
    TimeSeriesPoint,
    TopContributor,
    TopRepository,
    Timeframe,
)
from release_stats.renderer import (
    EXPORT_COLUMNS,
    _make_inline_bar,
    render_dashboard,
    render_json,
    render_repository_stats,
    render_time_series_csv,
    to_json,
    write_export_csv,
)

PUBLISHED = datetime(2023, 7, 5, 12, tzinfo=timezone.utc)


def _make_dashboard() -> DashboardData:
    return DashboardData(
        time_series_data=[
            TimeSeriesPoint("2023-07-03", "octo/x", 1, 0, 0),
            TimeSeriesPoint("2023-07-05", "octo/x", 2, 5, 2),
        ],
        summary_stats=SummaryStats(
            total_releases=3,
            total_commits=5,
            total_contributors=2,
            average_commits_per_release=5 / 3,
            average_time_to_release=2.0,
            recent_releases=[
                RecentRelease("octo/x", "v1.1.0", "v1.1.0", PUBLISHED, 5, 10, 2, 3)
            ],
            top_contributors=[
                TopContributor("alice", 3, 0, 0, 0, 60.0),
                TopContributor("bob", 2, 0, 0, 0, 40.0),
            ],
        ),
        top_repositories=[TopRepository("octo/x", 3, 5)],
        release_type_breakdown=[ReleaseTypeBreakdown("regular", 3, 100.0)],
    )


def test_make_inline_bar():
    assert _make_inline_bar(5, 10, width=10) == "█████"
    assert _make_inline_bar(0, 0) == ""


def test_render_dashboard_to_file(tmp_path):
    output = tmp_path / "dashboard.txt"
    render_dashboard(_make_dashboard(), title="octo", top_n=1, output_file=str(output))

    content = output.read_text(encoding="utf-8")
    assert "octo" in content
    assert "Releases over time" in content
    assert "v1.1.0" in content
    assert "alice" in content
    assert "bob" not in content
    assert "regular" in content


def test_render_dashboard_empty(capsys):
    data = DashboardData([], SummaryStats(total_releases=0), [], [])
    render_dashboard(data)
    assert "Summary" in capsys.readouterr().out


def test_render_repository_stats(tmp_path):
    stats = RepositoryReleaseStats(
        "octo/x",
        [
            ReleaseStat(
                "octo/x",
                "v1.1.0",
                "v1.1.0",
                PUBLISHED,
                ReleaseComparison(4, 10, 2, 3, [AuthorStat("alice", 4)]),
            )
        ],
    )
    output = tmp_path / "stats.txt"
    render_repository_stats(stats, output_file=str(output))
    content = output.read_text(encoding="utf-8")
    assert "v1.1.0" in content
    assert "alice" in content
    assert "2023-07-05" in content


def test_to_json_handles_datetimes_and_enums():
    payload = json.loads(to_json({"when": PUBLISHED, "timeframe": Timeframe.WEEKLY}))
    assert payload == {"when": "2023-07-05T12:00:00+00:00", "timeframe": "weekly"}


def test_render_json_stdout(capsys):
    render_json(_make_dashboard())
    payload = json.loads(capsys.readouterr().out)
    assert payload["summary_stats"]["total_commits"] == 5


def test_render_time_series_csv(capsys):
    render_time_series_csv(_make_dashboard())
    rows = list(csv.reader(capsys.readouterr().out.splitlines()))
    assert rows[0] == ["date", "repository", "release_count", "commit_count", "contributor_count"]
    assert rows[2] == ["2023-07-05", "octo/x", "2", "5", "2"]


def test_write_export_csv_fills_missing_cells(tmp_path):
    path = tmp_path / "export.csv"
    write_export_csv(
        path,
        [
            {"section": "Release Type Breakdown", "type": "regular", "release_count": 3, "percentage": 100.0},
        ],
    )
    with open(path, encoding="utf-8", newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0] == [title for _, title in EXPORT_COLUMNS]
    assert rows[1] == ["Release Type Breakdown", "", "", "regular", "3", "", "", "100.0"]
