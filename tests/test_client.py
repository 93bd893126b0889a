"""Tests for the GitHub client module."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from release_stats.errors import (
    AuthenticationError,
    RateLimitExceededError,
    RepositoryNotFoundError,
    UpstreamError,
)
from release_stats.github.client import GitHubClient
from release_stats.github.rate_limit import (
    MAX_WAIT_SECONDS,
    RateLimitMonitor,
    is_quota_exhausted,
    seconds_until_reset,
)


def test_client_instantiation():
    client = GitHubClient(token="test-token")
    assert client._client is not None
    assert "Bearer test-token" in client._client.headers["Authorization"]


def test_client_without_token_is_anonymous():
    client = GitHubClient()
    assert "Authorization" not in client._client.headers


def test_client_default_concurrency():
    client = GitHubClient(token="test-token", concurrency=10)
    assert client._semaphore._value == 10


def test_client_no_cache():
    client = GitHubClient(token="test-token", no_cache=True)
    assert client._cache is None


def test_client_custom_base_url():
    client = GitHubClient(base_url="https://ghe.example.com/api/v3")
    assert str(client._client.base_url).startswith("https://ghe.example.com/api/v3")


@pytest.mark.asyncio
async def test_client_context_manager():
    async with GitHubClient(token="test-token", no_cache=True) as client:
        assert client is not None


def _make_mock_response(
    status_code: int = 200,
    json_data=None,
    headers: dict | None = None,
):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else []
    resp.headers = headers or {"Link": ""}
    return resp


def _client(**kwargs) -> GitHubClient:
    client = GitHubClient(token="test-token", **kwargs)
    client._rate_limit.wait_if_needed = AsyncMock()
    client._rate_limit.update = MagicMock()
    return client


@pytest.mark.asyncio
async def test_get_basic():
    client = _client(no_cache=True)
    resp = _make_mock_response(200, json_data={"key": "value"})
    client._client.get = AsyncMock(return_value=resp)

    result = await client._get("/test")
    assert result == resp
    client._rate_limit.update.assert_called_once_with(resp)


@pytest.mark.asyncio
async def test_get_retries_server_errors_with_backoff():
    client = _client(no_cache=True)
    ok = _make_mock_response(200, json_data={})
    client._client.get = AsyncMock(
        side_effect=[_make_mock_response(502), _make_mock_response(503), ok]
    )

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        result = await client._get("/test")

    assert result is ok
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_get_gives_up_after_max_retries():
    client = _client(no_cache=True, max_retries=3)
    client._client.get = AsyncMock(return_value=_make_mock_response(500))

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(UpstreamError) as exc_info:
            await client._get("/test")

    assert exc_info.value.upstream_status == 500
    assert client._client.get.await_count == 4
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_get_retries_transport_errors():
    client = _client(no_cache=True)
    ok = _make_mock_response(200)
    client._client.get = AsyncMock(side_effect=[httpx.ConnectError("refused"), ok])

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock):
        assert await client._get("/test") is ok


@pytest.mark.asyncio
async def test_get_transport_errors_exhaust_retries():
    client = _client(no_cache=True, max_retries=1)
    client._client.get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(UpstreamError, match="failed after 1 retries"):
            await client._get("/test")


@pytest.mark.asyncio
async def test_get_waits_for_rate_limit_reset_without_using_retries():
    client = _client(no_cache=True, max_retries=0)
    limited = _make_mock_response(
        403,
        headers={
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + 10),
        },
    )
    ok = _make_mock_response(200)
    client._client.get = AsyncMock(side_effect=[limited, limited, ok])

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        assert await client._get("/test") is ok

    assert sleep.await_count == 2
    assert all(0 < c.args[0] <= 12 for c in sleep.await_args_list)


@pytest.mark.asyncio
async def test_get_rate_limit_waits_are_bounded():
    client = _client(no_cache=True, max_rate_limit_waits=2)
    limited = _make_mock_response(
        403, headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "0"}
    )
    client._client.get = AsyncMock(return_value=limited)

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock):
        with pytest.raises(RateLimitExceededError):
            await client._get("/test")
    assert client._client.get.await_count == 3


@pytest.mark.asyncio
async def test_get_sleeps_once_per_rate_limit_rejection():
    client = GitHubClient(token="test-token", no_cache=True)
    limited = _make_mock_response(
        403,
        headers={
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + 600),
        },
    )
    ok = _make_mock_response(200)
    client._client.get = AsyncMock(side_effect=[limited, ok])

    with patch("release_stats.github.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
        assert await client._get("/test") is ok

    sleep.assert_awaited_once()
    assert client._rate_limit.remaining is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error"),
    [
        (401, AuthenticationError),
        (404, RepositoryNotFoundError),
        (422, UpstreamError),
    ],
)
async def test_get_maps_client_errors(status, error):
    client = _client(no_cache=True)
    client._client.get = AsyncMock(return_value=_make_mock_response(status))

    with pytest.raises(error) as exc_info:
        await client._get("/test")
    assert exc_info.value.upstream_status == status
    client._client.get.assert_awaited_once()


@pytest.mark.asyncio
async def test_forbidden_with_quota_left_is_not_retried():
    client = _client(no_cache=True)
    client._client.get = AsyncMock(
        return_value=_make_mock_response(403, headers={"X-RateLimit-Remaining": "10"})
    )
    with pytest.raises(UpstreamError):
        await client._get("/test")
    client._client.get.assert_awaited_once()


@pytest.mark.asyncio
async def test_paginate_single_page():
    client = _client(no_cache=True)
    client._client.get = AsyncMock(
        return_value=_make_mock_response(200, json_data=[{"id": 1}, {"id": 2}])
    )

    result = await client._paginate("/test")
    assert result == [{"id": 1}, {"id": 2}]
    assert client._client.get.call_args.kwargs["params"] == {"per_page": 100}


@pytest.mark.asyncio
async def test_paginate_multiple_pages():
    client = _client(no_cache=True)
    page1 = _make_mock_response(
        200,
        json_data=[{"id": 1}],
        headers={"Link": '<https://api.github.com/test?page=2>; rel="next"'},
    )
    page2 = _make_mock_response(200, json_data=[{"id": 2}])
    client._client.get = AsyncMock(side_effect=[page1, page2])

    result = await client._paginate("/test")
    assert result == [{"id": 1}, {"id": 2}]
    second_call = client._client.get.call_args_list[1]
    assert second_call.args[0] == "https://api.github.com/test?page=2"
    assert second_call.kwargs["params"] == {}


@pytest.mark.asyncio
async def test_paginate_stops_on_empty_page():
    client = _client(no_cache=True)
    empty = _make_mock_response(
        200,
        json_data=[],
        headers={"Link": '<https://api.github.com/test?page=3>; rel="next"'},
    )
    client._client.get = AsyncMock(return_value=empty)

    assert await client._paginate("/test") == []
    client._client.get.assert_awaited_once()


@pytest.mark.asyncio
async def test_list_releases():
    client = _client(no_cache=True)
    client._paginate = AsyncMock(return_value=[{"tag_name": "v1"}])

    result = await client.list_releases("octo", "x")
    assert result == [{"tag_name": "v1"}]
    client._paginate.assert_called_once_with("/repos/octo/x/releases")


@pytest.mark.asyncio
async def test_compare_quotes_refs_and_caches():
    client = _client()
    resp = _make_mock_response(200, json_data={"commits": [], "files": []})
    client._client.get = AsyncMock(return_value=resp)

    first = await client.compare("octo", "x", "v1.0.0", "release/2")
    second = await client.compare("octo", "x", "v1.0.0", "release/2")

    assert first == second == {"commits": [], "files": []}
    client._client.get.assert_awaited_once()
    assert client._client.get.call_args.args[0] == "/repos/octo/x/compare/v1.0.0...release%2F2"


@pytest.mark.asyncio
async def test_compare_not_cached_when_disabled():
    client = _client(no_cache=True)
    client._client.get = AsyncMock(return_value=_make_mock_response(200, json_data={}))
    await client.compare("octo", "x", "a", "b")
    await client.compare("octo", "x", "a", "b")
    assert client._client.get.await_count == 2


def test_is_quota_exhausted():
    assert is_quota_exhausted(_make_mock_response(403, headers={"X-RateLimit-Remaining": "0"}))
    assert is_quota_exhausted(_make_mock_response(429, headers={"X-RateLimit-Remaining": "0"}))
    assert not is_quota_exhausted(_make_mock_response(403, headers={"X-RateLimit-Remaining": "5"}))
    assert not is_quota_exhausted(_make_mock_response(200, headers={"X-RateLimit-Remaining": "0"}))


def test_seconds_until_reset_is_capped():
    far = _make_mock_response(403, headers={"X-RateLimit-Reset": str(time.time() + 10**6)})
    assert seconds_until_reset(far) == MAX_WAIT_SECONDS
    past = _make_mock_response(403, headers={"X-RateLimit-Reset": "0"})
    assert seconds_until_reset(past) == 1
    assert seconds_until_reset(_make_mock_response(403, headers={"Link": ""})) == 1.0


@pytest.mark.asyncio
async def test_rate_limit_monitor_sleeps_when_exhausted():
    monitor = RateLimitMonitor()
    monitor.update(
        _make_mock_response(
            200,
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(time.time() + 5)},
        )
    )
    assert monitor.remaining == 0

    with patch("release_stats.github.rate_limit.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await monitor.wait_if_needed()
        await monitor.wait_if_needed()

    sleep.assert_awaited_once()
    assert monitor.remaining is None
