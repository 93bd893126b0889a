"""Orchestrator: wires together client, services, and renderers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from .config import Settings
from .dashboard import DashboardService
from .export import ExportService
from .github.client import GitHubClient
from .models import DashboardFilterParams, ExportOptions
from .releases import ReleaseService
from .renderer import (
    render_dashboard,
    render_json,
    render_repository_stats,
    render_time_series_csv,
)
from .reports import generate_all_reports
from .statistics import sort_releases

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0  # seconds


@dataclass
class Services:
    """The service graph, built once per process and shared by every caller."""

    settings: Settings
    client: GitHubClient
    releases: ReleaseService
    dashboard: DashboardService
    exports: ExportService

    async def aclose(self) -> None:
        await self.exports.aclose()
        await self.client.close()


def build_services(settings: Settings) -> Services:
    client = GitHubClient(
        token=settings.token,
        concurrency=settings.concurrency,
        base_url=settings.api_url,
        verify_ssl=settings.verify_ssl,
        max_retries=settings.max_retries,
        cache_size=settings.cache_size,
    )
    releases = ReleaseService(client, settings.repositories, cache_size=settings.cache_size)
    dashboard = DashboardService(releases, cache_ttl=settings.dashboard_cache_ttl)
    exports = ExportService(dashboard, settings.export_dir)
    return Services(
        settings=settings,
        client=client,
        releases=releases,
        dashboard=dashboard,
        exports=exports,
    )


async def run_dashboard(
    settings: Settings,
    params: DashboardFilterParams,
    output_format: str = "table",
    top_n: int = 10,
    output_file: str | None = None,
) -> None:
    """Main pipeline: fetch data, aggregate, render."""
    services = build_services(settings)
    try:
        data = await services.dashboard.get_dashboard_data(params)
    finally:
        await services.aclose()

    if output_format == "json":
        render_json(data, output_file=output_file)
    elif output_format == "csv":
        render_time_series_csv(data, output_file=output_file)
    else:
        title = "release-stats: " + ", ".join(params.repositories or settings.repositories)
        render_dashboard(data, title=title, top_n=top_n, output_file=output_file)


async def run_repository_stats(
    settings: Settings,
    repository: str,
    since: datetime | None = None,
    until: datetime | None = None,
    output_format: str = "table",
    output_file: str | None = None,
) -> None:
    services = build_services(settings)
    try:
        stats = await services.releases.fetch_repository_release_stats(
            repository, since, until
        )
    finally:
        await services.aclose()

    if output_format == "json":
        render_json(stats, output_file=output_file)
    else:
        render_repository_stats(stats, output_file=output_file)


async def run_reports(settings: Settings, output_dir: Path) -> dict[str, Path]:
    services = build_services(settings)
    try:
        releases = await services.releases.fetch_all_releases()
    finally:
        await services.aclose()
    return generate_all_reports(
        sort_releases(releases), output_dir, comparison_pair=settings.comparison_pair
    )


async def run_export(
    settings: Settings,
    params: DashboardFilterParams,
    options: ExportOptions,
    on_progress: Callable[[dict], None] | None = None,
    poll_interval: float = POLL_INTERVAL,
) -> dict:
    """Start an export job and poll it until it reaches a terminal state."""
    services = build_services(settings)
    try:
        status = await services.exports.create_export_job(params, options)
        export_id = status["export_id"]
        while status["status"] not in ("completed", "failed"):
            await asyncio.sleep(poll_interval)
            status = services.exports.get_export_status(export_id) or status
            if on_progress is not None:
                on_progress(status)
    finally:
        await services.aclose()
    return status
