"""Shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from release_stats.models import Release


def make_release(
    tag: str,
    published: str,
    repository: str = "octo/x",
    author: str = "alice",
    draft: bool = False,
    prerelease: bool = False,
) -> Release:
    published_at = datetime.fromisoformat(published.replace("Z", "+00:00"))
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    return Release(
        repository=repository,
        tag_name=tag,
        name=tag,
        created_at=published_at,
        published_at=published_at,
        author=author,
        draft=draft,
        prerelease=prerelease,
    )


def release_payload(
    tag: str,
    published: str | None,
    author: str = "alice",
    draft: bool = False,
    prerelease: bool = False,
) -> dict:
    return {
        "id": abs(hash(tag)) % 100000,
        "tag_name": tag,
        "name": tag,
        "created_at": published,
        "published_at": published,
        "author": {"login": author},
        "draft": draft,
        "prerelease": prerelease,
        "html_url": f"https://github.com/octo/x/releases/tag/{tag}",
    }


@pytest.fixture
def sample_releases() -> list[Release]:
    # Mon, Wed, Sat, Mon
    return [
        make_release("v1.0.0", "2023-07-03T12:00:00Z"),
        make_release("v1.1.0", "2023-07-05T12:00:00Z"),
        make_release("v1.2.0", "2023-07-08T12:00:00Z"),
        make_release("v1.3.0", "2023-07-10T12:00:00Z"),
    ]
