"""Runtime configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .errors import ConfigurationError, InvalidRepositoryError
from .releases import parse_repository

DEFAULT_REPOSITORIES = ("daangn/stackflow", "daangn/seed-design")
DEFAULT_EXPORT_DIR = Path("data") / "exports"
DEFAULT_REPORTS_DIR = Path("data") / "csv"


@dataclass(frozen=True)
class Settings:
    """Validated runtime settings shared by the API and the CLI."""

    token: str | None = None
    api_url: str | None = None
    repositories: tuple[str, ...] = DEFAULT_REPOSITORIES
    export_dir: Path = DEFAULT_EXPORT_DIR
    reports_dir: Path = DEFAULT_REPORTS_DIR
    dashboard_cache_ttl: float = 300.0
    cache_size: int = 1024
    max_retries: int = 3
    concurrency: int = 5
    verify_ssl: bool = True

    @property
    def comparison_pair(self) -> tuple[str, str] | None:
        """The two repositories compared in reports, when exactly two are configured."""
        if len(self.repositories) == 2:
            return self.repositories[0], self.repositories[1]
        return None


def _env_number(name: str, default: float, cast: type = int) -> Any:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"Invalid value for {name}: must not be negative")
    return value


def _validate_repositories(repositories: tuple[str, ...]) -> None:
    for repository in repositories:
        try:
            parse_repository(repository)
        except InvalidRepositoryError as exc:
            raise ConfigurationError(str(exc)) from None


def parse_repositories(raw: str | None) -> tuple[str, ...]:
    if not raw or not raw.strip():
        return DEFAULT_REPOSITORIES
    repositories = tuple(r.strip() for r in raw.split(",") if r.strip())
    _validate_repositories(repositories)
    return repositories


def load_settings(**overrides: Any) -> Settings:
    """Build settings from environment variables; non-None overrides win.

    Raises:
        ConfigurationError: If a numeric variable or a repository is invalid.
    """
    settings = Settings(
        token=os.getenv("GITHUB_TOKEN", "").strip() or None,
        api_url=os.getenv("GITHUB_API_URL", "").strip() or None,
        repositories=parse_repositories(os.getenv("RELEASE_STATS_REPOSITORIES")),
        export_dir=Path(os.getenv("RELEASE_STATS_EXPORT_DIR", "").strip() or DEFAULT_EXPORT_DIR),
        reports_dir=Path(
            os.getenv("RELEASE_STATS_REPORTS_DIR", "").strip() or DEFAULT_REPORTS_DIR
        ),
        dashboard_cache_ttl=_env_number("RELEASE_STATS_CACHE_TTL", 300.0, float),
        cache_size=_env_number("RELEASE_STATS_CACHE_SIZE", 1024),
        max_retries=_env_number("RELEASE_STATS_MAX_RETRIES", 3),
        concurrency=_env_number("RELEASE_STATS_CONCURRENCY", 5),
    )
    values = {k: v for k, v in overrides.items() if v is not None}
    if "repositories" in values:
        values["repositories"] = tuple(values["repositories"]) or DEFAULT_REPOSITORIES
        _validate_repositories(values["repositories"])
    if "export_dir" in values:
        values["export_dir"] = Path(values["export_dir"])
    if "reports_dir" in values:
        values["reports_dir"] = Path(values["reports_dir"])
    settings = replace(settings, **values)
    if settings.concurrency < 1:
        raise ConfigurationError("Concurrency must be at least 1")
    return settings
