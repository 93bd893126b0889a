"""Rich-based terminal renderer with JSON/CSV support."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import DashboardData, RepositoryReleaseStats

EXPORT_COLUMNS = [
    ("section", "Section"),
    ("date", "Date"),
    ("repository", "Repository"),
    ("type", "Type"),
    ("release_count", "Release Count"),
    ("commit_count", "Commit Count"),
    ("contributor_count", "Contributor Count"),
    ("percentage", "Percentage"),
]


def _format_number(n: int) -> str:
    return f"{n:,}"


def _format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def _make_inline_bar(count: int, max_count: int, width: int = 15) -> str:
    if max_count == 0:
        return ""
    filled = round(count / max_count * width)
    return "█" * filled


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _write_to_file(content: str, output_file: str) -> None:
    """Write content to a file and print confirmation."""
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(content)
    Console().print(f"Saved to {output_file}")


def _console(output_file: str | None) -> tuple[Console, io.StringIO | None]:
    if output_file:
        string_io = io.StringIO()
        return Console(file=string_io, force_terminal=False, width=120), string_io
    return Console(), None


def render_dashboard(
    data: DashboardData,
    title: str = "release-stats",
    top_n: int = 10,
    output_file: str | None = None,
) -> None:
    """Render a dashboard payload to the terminal using rich."""
    console, string_io = _console(output_file)
    summary_stats = data.summary_stats

    console.print(Panel(Text(title, justify="center"), style="bold cyan"))
    console.print()

    console.print("[bold]Summary[/bold]")
    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column("label", style="dim")
    summary.add_column("value", style="bold")
    summary.add_row("Releases", _format_number(summary_stats.total_releases))
    summary.add_row("Commits", _format_number(summary_stats.total_commits))
    summary.add_row("Contributors", _format_number(summary_stats.total_contributors))
    summary.add_row("Additions", _format_number(summary_stats.total_additions))
    summary.add_row("Deletions", _format_number(summary_stats.total_deletions))
    summary.add_row("Files Changed", _format_number(summary_stats.total_files_changed))
    summary.add_row(
        "Commits / Release", f"{summary_stats.average_commits_per_release:.1f}"
    )
    summary.add_row(
        "Working Days / Release", f"{summary_stats.average_time_to_release:.1f}"
    )
    console.print(summary)
    console.print()

    if data.top_repositories:
        console.print("[bold]Repositories[/bold]")
        repo_table = Table(show_header=True, header_style="bold")
        repo_table.add_column("Repository", no_wrap=True)
        repo_table.add_column("Releases", justify="right")
        repo_table.add_column("Commits", justify="right")
        for r in data.top_repositories:
            repo_table.add_row(
                r.name, _format_number(r.release_count), _format_number(r.commit_count)
            )
        console.print(repo_table)
        console.print()

    if data.time_series_data:
        max_count = max(p.release_count for p in data.time_series_data)
        console.print("[bold]Releases over time[/bold]")
        series_table = Table(show_header=True, header_style="bold")
        series_table.add_column("Period", no_wrap=True)
        series_table.add_column("Repository", no_wrap=True)
        series_table.add_column("Releases", justify="right")
        series_table.add_column("")
        series_table.add_column("Commits", justify="right")
        series_table.add_column("Contributors", justify="right")
        for p in data.time_series_data:
            series_table.add_row(
                p.date,
                p.repository,
                str(p.release_count),
                _make_inline_bar(p.release_count, max_count),
                _format_number(p.commit_count),
                str(p.contributor_count),
            )
        console.print(series_table)
        console.print()

    if summary_stats.recent_releases:
        console.print("[bold]Recent Releases[/bold]")
        recent_table = Table(show_header=True, header_style="bold")
        recent_table.add_column("Repository", no_wrap=True)
        recent_table.add_column("Tag", no_wrap=True)
        recent_table.add_column("Published", no_wrap=True)
        recent_table.add_column("Commits", justify="right")
        recent_table.add_column("+/-", justify="right", no_wrap=True)
        recent_table.add_column("Files", justify="right")
        for r in summary_stats.recent_releases:
            recent_table.add_row(
                r.repository,
                r.tag_name,
                _format_date(r.published_at),
                _format_number(r.commit_count),
                f"[green]+{_format_number(r.additions)}[/green] "
                f"[red]-{_format_number(r.deletions)}[/red]",
                _format_number(r.files_changed),
            )
        console.print(recent_table)
        console.print()

    if summary_stats.top_contributors:
        console.print(f"[bold]Top Contributors (top {top_n})[/bold]")
        contrib_table = Table(show_header=True, header_style="bold")
        contrib_table.add_column("#", justify="right")
        contrib_table.add_column("Author")
        contrib_table.add_column("Commits", justify="right")
        contrib_table.add_column("Share", justify="right")
        for i, c in enumerate(summary_stats.top_contributors[:top_n], 1):
            contrib_table.add_row(
                str(i),
                c.author,
                _format_number(c.commits),
                f"{c.contribution_percentage:.1f}%",
            )
        console.print(contrib_table)
        console.print()

    if data.release_type_breakdown:
        console.print("[bold]Release Types[/bold]")
        type_table = Table(show_header=False, box=None, padding=(0, 2))
        type_table.add_column("type")
        type_table.add_column("count", justify="right")
        type_table.add_column("share", justify="right", style="dim")
        for b in data.release_type_breakdown:
            type_table.add_row(b.type, _format_number(b.count), f"{b.percentage:.1f}%")
        console.print(type_table)

    if output_file and string_io is not None:
        _write_to_file(string_io.getvalue(), output_file)


def render_repository_stats(
    stats: RepositoryReleaseStats, output_file: str | None = None
) -> None:
    """Render per-release comparisons of one repository."""
    console, string_io = _console(output_file)

    console.print(Panel(Text(stats.repository, justify="center"), style="bold cyan"))
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tag", no_wrap=True)
    table.add_column("Published", no_wrap=True)
    table.add_column("Commits", justify="right")
    table.add_column("+/-", justify="right", no_wrap=True)
    table.add_column("Files", justify="right")
    table.add_column("Top Author")
    for s in stats.releases:
        c = s.compare_with_previous
        top_author = c.author_stats[0].author if c.author_stats else "-"
        table.add_row(
            s.tag_name,
            _format_date(s.published_at),
            _format_number(c.total_commits),
            f"+{_format_number(c.total_additions)} -{_format_number(c.total_deletions)}",
            _format_number(c.total_files_changed),
            top_author,
        )
    console.print(table)

    if output_file and string_io is not None:
        _write_to_file(string_io.getvalue(), output_file)


def to_json(obj: Any) -> str:
    payload = asdict(obj) if is_dataclass(obj) and not isinstance(obj, type) else obj
    return json.dumps(payload, indent=2, ensure_ascii=False, default=_json_default)


def render_json(obj: Any, output_file: str | None = None) -> None:
    """Render a dataclass (or plain structure) as JSON."""
    content = to_json(obj)
    if output_file:
        _write_to_file(content, output_file)
    else:
        print(content)


def render_time_series_csv(data: DashboardData, output_file: str | None = None) -> None:
    """Render time series points as CSV."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["date", "repository", "release_count", "commit_count", "contributor_count"]
    )
    for p in data.time_series_data:
        writer.writerow(
            [p.date, p.repository, p.release_count, p.commit_count, p.contributor_count]
        )
    content = output.getvalue()
    if output_file:
        _write_to_file(content, output_file)
    else:
        print(content, end="")


def write_export_csv(path: Path, rows: Iterable[Mapping[str, Any]]) -> None:
    """Write export rows with the fixed export header; missing cells stay empty."""
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([title for _, title in EXPORT_COLUMNS])
        for row in rows:
            writer.writerow([row.get(key, "") for key, _ in EXPORT_COLUMNS])
