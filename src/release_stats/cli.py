"""CLI entrypoint for release-stats."""

from __future__ import annotations

import asyncio
import logging
import re
import sys
from datetime import datetime, timedelta
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn

from . import __version__
from .config import Settings, load_settings
from .errors import (
    AuthenticationError,
    ConfigurationError,
    RateLimitExceededError,
    ReleaseStatsError,
    RepositoryNotFoundError,
)
from .models import DashboardFilterParams, ExportOptions, SortSpec, Timeframe
from .workdays import parse_date_bound


def _parse_relative_date(value: str) -> str | None:
    """Parse relative date like 7d, 2w, 3m, 1y into YYYY-MM-DD string."""
    match = re.match(r"^(\d+)([dwmy])$", value)
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2)
    if unit == "d":
        delta = timedelta(days=amount)
    elif unit == "w":
        delta = timedelta(weeks=amount)
    elif unit == "m":
        delta = timedelta(days=amount * 30)
    else:  # unit == "y"
        delta = timedelta(days=amount * 365)
    target = datetime.now() - delta
    return target.strftime("%Y-%m-%d")


def _resolve_date(value: str | None, end: bool = False) -> datetime | None:
    """Resolve a date value that may be relative (7d, 30d, 3m, 1y) or absolute (YYYY-MM-DD)."""
    if value is None:
        return None
    resolved = _parse_relative_date(value) or value
    try:
        return parse_date_bound(resolved, end=end)
    except ValueError:
        raise click.BadParameter(
            f"'{value}' is not a date (YYYY-MM-DD) or relative date (7d, 2w, 3m, 1y)"
        ) from None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _run(coro) -> object:
    """Run a pipeline coroutine, turning errors into a message and exit code 1."""
    try:
        return asyncio.run(coro)
    except RepositoryNotFoundError as exc:
        click.echo(f"Error: not found. Check the repository names. ({exc})", err=True)
    except AuthenticationError:
        click.echo("Error: Authentication failed. Check your --token or $GITHUB_TOKEN.", err=True)
    except RateLimitExceededError:
        click.echo("Error: GitHub API rate limit exceeded. Try again later.", err=True)
    except ReleaseStatsError as exc:
        click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _filter_params(
    settings: Settings,
    timeframe: str,
    since: str | None,
    until: str | None,
    sort_by: str | None,
    sort_direction: str,
) -> DashboardFilterParams:
    return DashboardFilterParams(
        timeframe=Timeframe(timeframe),
        start_date=_resolve_date(since),
        end_date=_resolve_date(until, end=True),
        repositories=settings.repositories,
        sort=SortSpec(field=sort_by, direction=sort_direction) if sort_by else None,
    )


timeframe_option = click.option(
    "--timeframe",
    type=click.Choice([t.value for t in Timeframe], case_sensitive=False),
    default="daily",
    show_default=True,
    help="Time series granularity",
)
since_option = click.option(
    "--since", default=None, help="Start date (YYYY-MM-DD or relative: 7d, 2w, 3m, 1y)"
)
until_option = click.option(
    "--until", default=None, help="End date (YYYY-MM-DD or relative: 7d, 2w, 3m, 1y)"
)
output_option = click.option(
    "--output",
    "output_file",
    default=None,
    type=click.Path(),
    help="Save output to file instead of stdout",
)


@click.group()
@click.option(
    "--token",
    envvar="GITHUB_TOKEN",
    default=None,
    show_envvar=True,
    help="GitHub personal access token",
)
@click.option(
    "--repo",
    "repositories",
    multiple=True,
    help="Repository as owner/name (repeatable, defaults to $RELEASE_STATS_REPOSITORIES)",
)
@click.option("--api-url", default=None, help="GitHub Enterprise API base URL")
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    default=False,
    help="Disable SSL verification (self-signed certs)",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log progress to stderr")
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: click.Context,
    token: str | None,
    repositories: tuple[str, ...],
    api_url: str | None,
    no_ssl_verify: bool,
    verbose: bool,
) -> None:
    """Release statistics for GitHub repositories.

    \b
    Examples:
      release-stats dashboard --timeframe weekly --since 3m
      release-stats --repo daangn/stackflow repo-stats daangn/stackflow --since 2024-01-01
      release-stats reports --output-dir data/csv
      release-stats export --timeframe monthly
      release-stats serve --port 8000
    """
    _configure_logging(verbose)
    try:
        ctx.obj = load_settings(
            token=token,
            repositories=repositories or None,
            api_url=api_url,
            verify_ssl=False if no_ssl_verify else None,
        )
    except ConfigurationError as exc:
        raise click.UsageError(str(exc)) from None


@main.command()
@timeframe_option
@since_option
@until_option
@click.option(
    "--sort-by",
    type=click.Choice(["name", "release_count", "commit_count"], case_sensitive=False),
    default=None,
    help="Sort repositories by this field",
)
@click.option(
    "--sort-direction",
    type=click.Choice(["asc", "desc"], case_sensitive=False),
    default="desc",
    show_default=True,
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json", "csv"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format (csv exports the time series only)",
)
@click.option("--top-n", default=10, show_default=True, help="Number of top contributors to show")
@output_option
@click.pass_obj
def dashboard(
    settings: Settings,
    timeframe: str,
    since: str | None,
    until: str | None,
    sort_by: str | None,
    sort_direction: str,
    output_format: str,
    top_n: int,
    output_file: str | None,
) -> None:
    """Show release dashboard statistics."""
    from .orchestrator import run_dashboard

    params = _filter_params(settings, timeframe, since, until, sort_by, sort_direction)
    _run(run_dashboard(settings, params, output_format, top_n=top_n, output_file=output_file))


@main.command("repo-stats")
@click.argument("repository")
@since_option
@until_option
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
)
@output_option
@click.pass_obj
def repo_stats(
    settings: Settings,
    repository: str,
    since: str | None,
    until: str | None,
    output_format: str,
    output_file: str | None,
) -> None:
    """Per-release commit and contributor stats for REPOSITORY (owner/name)."""
    from .orchestrator import run_repository_stats

    _run(
        run_repository_stats(
            settings,
            repository,
            _resolve_date(since),
            _resolve_date(until, end=True),
            output_format=output_format,
            output_file=output_file,
        )
    )


@main.command()
@click.option(
    "--output-dir",
    default=None,
    type=click.Path(file_okay=False),
    help="Directory for the CSV reports (default: RELEASE_STATS_REPORTS_DIR or data/csv)",
)
@click.pass_obj
def reports(settings: Settings, output_dir: str | None) -> None:
    """Write yearly/monthly/weekly/daily and comparison CSV reports."""
    from .orchestrator import run_reports

    target = Path(output_dir) if output_dir else settings.reports_dir
    paths = _run(run_reports(settings, target))
    for name, path in paths.items():
        click.echo(f"{name}: {path}")


@main.command()
@timeframe_option
@since_option
@until_option
@click.option("--no-time-series", is_flag=True, default=False, help="Leave out time series rows")
@click.option(
    "--no-repositories", is_flag=True, default=False, help="Leave out repository rows"
)
@click.option(
    "--no-release-types", is_flag=True, default=False, help="Leave out release type rows"
)
@click.pass_obj
def export(
    settings: Settings,
    timeframe: str,
    since: str | None,
    until: str | None,
    no_time_series: bool,
    no_repositories: bool,
    no_release_types: bool,
) -> None:
    """Run a dashboard CSV export job and wait for it to finish."""
    from .orchestrator import run_export

    params = _filter_params(settings, timeframe, since, until, None, "desc")
    options = ExportOptions(
        include_time_series_data=not no_time_series,
        include_repository_breakdown=not no_repositories,
        include_release_type_breakdown=not no_release_types,
    )
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        transient=True,
    ) as progress:
        task = progress.add_task("Exporting...", total=100)

        def _on_progress(status: dict) -> None:
            progress.update(task, completed=status["progress"])

        status = _run(run_export(settings, params, options, on_progress=_on_progress))

    if status["status"] == "failed":
        click.echo(f"Error: export failed: {status['error']}", err=True)
        sys.exit(1)
    click.echo(f"Export written to {settings.export_dir / Path(status['download_url']).name}")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def serve(settings: Settings, host: str, port: int) -> None:
    """Serve the HTTP API."""
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(settings), host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    main()
