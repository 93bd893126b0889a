"""HTTP API for dashboard data, statistics and CSV exports.

Request and response bodies use camelCase field names.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, AsyncIterator, List, Literal, Optional, Sequence

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from . import __version__
from .config import Settings, load_settings
from .errors import InvalidFilterError, ReleaseStatsError
from .models import (
    DashboardFilterParams,
    ExportOptions,
    Release,
    ReleaseType,
    SortSpec,
    Timeframe,
)
from .orchestrator import Services, build_services
from .releases import parse_repository
from .reports import generate_all_reports
from .statistics import calculate_all_statistics, sort_releases
from .workdays import parse_date_bound

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DEFAULT_CLEANUP_MAX_AGE_MS = 24 * 60 * 60 * 1000


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FiltersPayload(CamelModel):
    model_config = ConfigDict(extra="forbid")

    repository: Optional[List[str]] = None
    release_type: Optional[List[ReleaseType]] = None


class SortPayload(CamelModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    direction: Literal["asc", "desc"] = "desc"


class ExportOptionsPayload(CamelModel):
    include_time_series_data: bool = True
    include_repository_breakdown: bool = True
    include_release_type_breakdown: bool = True


class ExportRequest(CamelModel):
    timeframe: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    filters: Optional[FiltersPayload] = None
    sort: Optional[SortPayload] = None
    export_options: Optional[ExportOptionsPayload] = None


def _decode_json(model: type[BaseModel], raw: str | None, name: str) -> Any:
    if raw is None or not raw.strip():
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise InvalidFilterError(f"Invalid '{name}' parameter: {exc.errors()[0]['msg']}") from None


def decode_filter_params(
    timeframe: str | None,
    start_date: str | None,
    end_date: str | None,
    filters: FiltersPayload | None,
    sort: SortPayload | None,
    default_repositories: Sequence[str],
) -> DashboardFilterParams:
    """Validate raw request values into filter parameters.

    Raises:
        InvalidFilterError: For an unknown timeframe or an unparseable date.
        InvalidRepositoryError: For a repository not in ``owner/name`` form.
    """
    try:
        resolved_timeframe = Timeframe(timeframe) if timeframe else Timeframe.DAILY
    except ValueError:
        raise InvalidFilterError(
            f"Invalid timeframe '{timeframe}'. Expected daily, weekly or monthly"
        ) from None

    try:
        start = parse_date_bound(start_date) if start_date else None
        end = parse_date_bound(end_date, end=True) if end_date else None
    except ValueError:
        raise InvalidFilterError("startDate and endDate must be ISO-8601 dates") from None

    repositories = tuple(default_repositories)
    release_types = None
    if filters is not None:
        if filters.repository:
            repositories = tuple(filters.repository)
        if filters.release_type:
            release_types = tuple(filters.release_type)
    for repository in repositories:
        parse_repository(repository)

    return DashboardFilterParams(
        timeframe=resolved_timeframe,
        start_date=start,
        end_date=end,
        repositories=repositories,
        release_types=release_types,
        sort=SortSpec(field=sort.field, direction=sort.direction) if sort else None,
    )


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message},
    )


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_camel(key): _camelize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_camelize(item) for item in value]
    return value


def _ok(data: Any, message: str | None = None) -> dict[str, Any]:
    """Success envelope with *data* encoded to JSON types and camelCase keys."""
    body: dict[str, Any] = {"success": True, "data": _camelize(jsonable_encoder(data))}
    if message is not None:
        body["message"] = message
    return body


def _release_dict(release: Release) -> dict[str, Any]:
    data = asdict(release)
    data.update(
        year=release.year,
        month=release.month,
        week=release.week,
        day=release.day,
        is_working_day=release.is_working_day,
    )
    return data


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the API. Services created here are closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = build_services(settings or load_settings())
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()

    app = FastAPI(title="release-stats API", version=__version__, lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(ReleaseStatsError)
    async def _handle_release_stats_error(request: Request, exc: ReleaseStatsError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(exc.http_status, exc.title, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        return _error_response(400, "Bad Request", message)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(f"{API_PREFIX}/releases")
    async def list_releases(services: Services = Depends(get_services)) -> dict[str, Any]:
        releases = await services.releases.fetch_all_releases()
        return _ok([_release_dict(r) for r in releases])

    @app.get(f"{API_PREFIX}/releases/stats")
    async def release_stats(
        repository: Optional[str] = None,
        start_date: Optional[str] = Query(default=None, alias="startDate"),
        end_date: Optional[str] = Query(default=None, alias="endDate"),
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        if not repository:
            raise InvalidFilterError("repository is required")
        params = decode_filter_params(
            None, start_date, end_date, None, None, [repository]
        )
        stats = await services.releases.fetch_repository_release_stats(
            repository, params.start_date, params.end_date
        )
        return _ok(stats)

    @app.get(f"{API_PREFIX}/statistics")
    async def all_statistics(services: Services = Depends(get_services)) -> dict[str, Any]:
        releases = sort_releases(await services.releases.fetch_all_releases())
        report = calculate_all_statistics(releases, services.settings.comparison_pair)
        return _ok(report)

    @app.post(f"{API_PREFIX}/reports")
    async def write_reports(services: Services = Depends(get_services)) -> dict[str, Any]:
        releases = sort_releases(await services.releases.fetch_all_releases())
        output_dir = services.settings.reports_dir
        paths = generate_all_reports(
            releases, output_dir, comparison_pair=services.settings.comparison_pair
        )
        return _ok(
            {
                "output_dir": str(output_dir),
                "files": [{"report": name, "filename": p.name} for name, p in paths.items()],
            },
            message="CSV reports generated successfully",
        )

    @app.get(f"{API_PREFIX}/dashboard")
    async def dashboard(
        timeframe: Optional[str] = None,
        start_date: Optional[str] = Query(default=None, alias="startDate"),
        end_date: Optional[str] = Query(default=None, alias="endDate"),
        filters: Optional[str] = None,
        sort: Optional[str] = None,
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        params = decode_filter_params(
            timeframe,
            start_date,
            end_date,
            _decode_json(FiltersPayload, filters, "filters"),
            _decode_json(SortPayload, sort, "sort"),
            services.settings.repositories,
        )
        data = await services.dashboard.get_dashboard_data(params)
        return _ok(data)

    @app.post(f"{API_PREFIX}/dashboard/clear-cache")
    async def clear_dashboard_cache(services: Services = Depends(get_services)) -> dict[str, Any]:
        services.dashboard.clear_cache()
        return {"success": True, "message": "Dashboard cache cleared successfully"}

    @app.post(f"{API_PREFIX}/export/dashboard-csv")
    async def start_dashboard_export(
        body: ExportRequest, services: Services = Depends(get_services)
    ) -> dict[str, Any]:
        if not body.timeframe:
            raise InvalidFilterError("timeframe is required")
        if body.export_options is None:
            raise InvalidFilterError("exportOptions is required")
        params = decode_filter_params(
            body.timeframe,
            body.start_date,
            body.end_date,
            body.filters,
            body.sort,
            services.settings.repositories,
        )
        options = ExportOptions(**body.export_options.model_dump())
        snapshot = await services.exports.create_export_job(params, options)
        return _ok(snapshot)

    @app.get(f"{API_PREFIX}/export/status/{{export_id}}")
    async def export_status(export_id: str, services: Services = Depends(get_services)) -> Any:
        snapshot = services.exports.get_export_status(export_id)
        if snapshot is None:
            return _error_response(
                404, "Not Found", f"Export job with ID {export_id} not found"
            )
        return _ok(snapshot)

    @app.get(f"{API_PREFIX}/export/download/{{filename}}")
    async def download_export(filename: str, services: Services = Depends(get_services)) -> Any:
        path = services.exports.get_export_file_path(filename)
        if path is None:
            return _error_response(404, "Not Found", f"File {filename} not found")
        return FileResponse(path, media_type="text/csv", filename=path.name)

    @app.post(f"{API_PREFIX}/export/cleanup")
    async def cleanup_exports(
        max_age: int = Query(default=DEFAULT_CLEANUP_MAX_AGE_MS, alias="maxAge", ge=0),
        services: Services = Depends(get_services),
    ) -> dict[str, Any]:
        seconds = max_age / 1000
        removed_files = services.exports.cleanup_export_files(seconds)
        removed_jobs = services.exports.prune_jobs(seconds)
        return _ok(
            {"removed_files": removed_files, "removed_jobs": removed_jobs},
            message="Export files cleaned up successfully",
        )

    return app
