"""Asynchronous CSV export jobs.

A job moves ``pending -> processing -> completed | failed`` and never leaves
a terminal state. Clients poll ``get_export_status`` until the job is done.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from .dashboard import DashboardService
from .models import (
    DashboardData,
    DashboardFilterParams,
    ExportJob,
    ExportOptions,
    ExportStatus,
)
from .renderer import write_export_csv

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_PREFIX = "/api/v1/export/download"
DEFAULT_MAX_AGE = 24 * 60 * 60  # seconds
INITIAL_ESTIMATE = 30.0  # seconds
MAX_CONCURRENT_JOBS = 2


def build_export_rows(data: DashboardData, options: ExportOptions) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    if options.include_time_series_data:
        rows.extend(_time_series_rows(data))
    if options.include_repository_breakdown:
        rows.extend(_repository_rows(data))
    if options.include_release_type_breakdown:
        rows.extend(_release_type_rows(data))
    return rows


def _time_series_rows(data: DashboardData) -> list[dict[str, Any]]:
    return [
        {
            "section": "Time Series",
            "date": p.date,
            "repository": p.repository,
            "release_count": p.release_count,
            "commit_count": p.commit_count,
            "contributor_count": p.contributor_count,
        }
        for p in data.time_series_data
    ]


def _repository_rows(data: DashboardData) -> list[dict[str, Any]]:
    return [
        {
            "section": "Repository Breakdown",
            "repository": r.name,
            "release_count": r.release_count,
            "commit_count": r.commit_count,
        }
        for r in data.top_repositories
    ]


def _release_type_rows(data: DashboardData) -> list[dict[str, Any]]:
    return [
        {
            "section": "Release Type Breakdown",
            "type": b.type,
            "release_count": b.count,
            "percentage": round(b.percentage, 2),
        }
        for b in data.release_type_breakdown
    ]


class ExportService:
    """Owns export jobs, their background tasks and the export directory."""

    def __init__(
        self,
        dashboard: DashboardService,
        export_dir: Path,
        download_prefix: str = DEFAULT_DOWNLOAD_PREFIX,
        writer: Callable[[Path, Iterable[Mapping[str, Any]]], None] = write_export_csv,
        clock: Callable[[], float] = time.time,
        max_concurrent_jobs: int = MAX_CONCURRENT_JOBS,
    ) -> None:
        self._dashboard = dashboard
        self._export_dir = Path(export_dir)
        self._download_prefix = download_prefix.rstrip("/")
        self._writer = writer
        self._clock = clock
        self._jobs: dict[str, ExportJob] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        # jobs beyond this limit stay pending until a slot frees up
        self._workers = asyncio.Semaphore(max_concurrent_jobs)

    def _ensure_export_dir(self) -> None:
        self._export_dir.mkdir(parents=True, exist_ok=True)

    async def create_export_job(
        self, params: DashboardFilterParams, options: ExportOptions
    ) -> dict[str, Any]:
        """Register a job and start it in the background.

        Returns the initial (pending) view of the job; the work itself runs
        after the caller yields to the event loop.
        """
        self._ensure_export_dir()
        job = ExportJob(
            id=str(uuid.uuid4()),
            params=params,
            options=options,
            start_time=self._clock(),
            estimated_time_remaining=INITIAL_ESTIMATE,
        )
        self._jobs[job.id] = job
        snapshot = job.snapshot()

        task = asyncio.get_running_loop().create_task(self._process(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Created export job %s", job.id)
        return snapshot

    def _advance(self, job: ExportJob, progress: int) -> None:
        job.progress = max(job.progress, progress)

    async def _process(self, job: ExportJob) -> None:
        async with self._workers:
            await self._run_job(job)

    async def _run_job(self, job: ExportJob) -> None:
        try:
            job.status = ExportStatus.PROCESSING
            self._advance(job, 10)

            data = await self._dashboard.generate_dashboard_data(job.params)
            self._advance(job, 30)

            rows = build_export_rows(data, job.options)
            self._advance(job, 50)

            timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            filename = f"dashboard-export-{timestamp}-{job.id[:8]}.csv"
            path = self._export_dir / filename
            self._writer(path, rows)
            self._advance(job, 80)

            job.file_path = str(path)
            job.download_url = f"{self._download_prefix}/{filename}"
            job.estimated_time_remaining = 0
            self._advance(job, 100)
            job.status = ExportStatus.COMPLETED
            logger.info("Export job %s completed: %s", job.id, filename)
        except Exception as exc:
            logger.error("Error processing export job %s: %s", job.id, exc)
            job.error = str(exc) or exc.__class__.__name__
            job.status = ExportStatus.FAILED
        finally:
            job.finished_at = self._clock()

    def get_export_status(self, export_id: str) -> dict[str, Any] | None:
        """Current view of a job, or ``None`` for an unknown id."""
        job = self._jobs.get(export_id)
        if job is None:
            return None
        if job.status is ExportStatus.PROCESSING and job.progress > 0:
            elapsed = self._clock() - job.start_time
            job.estimated_time_remaining = max(0.0, elapsed * (100 / job.progress) - elapsed)
        return job.snapshot()

    def get_export_file_path(self, filename: str) -> Path | None:
        """Resolve a download name inside the export directory, or ``None``."""
        root = self._export_dir.resolve()
        path = (root / filename).resolve()
        if path.parent != root or not path.is_file():
            return None
        return path

    def cleanup_export_files(self, max_age: float = DEFAULT_MAX_AGE) -> int:
        """Delete artifacts older than *max_age* seconds. Job records are kept."""
        self._ensure_export_dir()
        now = time.time()
        removed = 0
        for path in self._export_dir.iterdir():
            if not path.is_file():
                continue
            if now - path.stat().st_mtime > max_age:
                path.unlink(missing_ok=True)
                removed += 1
        logger.info("Removed %d export files older than %.0fs", removed, max_age)
        return removed

    def prune_jobs(self, max_age: float = DEFAULT_MAX_AGE) -> int:
        """Forget finished jobs older than *max_age* seconds."""
        now = self._clock()
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status.is_terminal
            and job.finished_at is not None
            and now - job.finished_at > max_age
        ]
        for job_id in expired:
            del self._jobs[job_id]
        return len(expired)

    async def wait_for_jobs(self) -> None:
        """Wait until every in-flight job has finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_for_jobs()
