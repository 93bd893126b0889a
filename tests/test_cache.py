"""Tests for the cache module."""

from __future__ import annotations

import asyncio

import pytest

from release_stats.cache import MemoryCache, RequestCoalescer


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_cache_get_set():
    cache = MemoryCache()
    cache.set("key", [1, 2, 3])
    assert cache.get("key") == [1, 2, 3]
    assert len(cache) == 1


def test_cache_miss():
    cache = MemoryCache()
    assert cache.get("nonexistent") is None
    assert len(cache) == 0


def test_cache_ttl_expired():
    clock = FakeClock()
    cache = MemoryCache(ttl=300, clock=clock)
    cache.set("key", {"data": True})

    clock.now = 299
    assert cache.get("key") == {"data": True}

    clock.now = 300
    assert cache.get("key") is None
    assert len(cache) == 0


def test_cache_without_ttl_never_expires():
    clock = FakeClock()
    cache = MemoryCache(ttl=None, clock=clock)
    cache.set("key", "value")
    clock.now = 10**9
    assert cache.get("key") == "value"


def test_cache_evicts_least_recently_used():
    cache = MemoryCache(max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)
    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3


def test_cache_clear():
    cache = MemoryCache()
    cache.set("a", 1)
    cache.clear()
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0


def test_make_key_different_params():
    assert MemoryCache.make_key("/url", {"a": "1"}) != MemoryCache.make_key("/url", {"a": "2"})
    assert MemoryCache.make_key("/url", {"a": 1, "b": 2}) == MemoryCache.make_key(
        "/url", {"b": 2, "a": 1}
    )
    assert MemoryCache.make_key("/url", None) == MemoryCache.make_key("/url", {})


@pytest.mark.asyncio
async def test_coalescer_shares_inflight_call():
    coalescer = RequestCoalescer()
    calls = 0
    gate = asyncio.Event()

    async def factory():
        nonlocal calls
        calls += 1
        await gate.wait()
        return "result"

    first = asyncio.ensure_future(coalescer.run("k", factory))
    second = asyncio.ensure_future(coalescer.run("k", factory))
    await asyncio.sleep(0)
    assert len(coalescer) == 1
    gate.set()

    assert await asyncio.gather(first, second) == ["result", "result"]
    assert calls == 1
    assert len(coalescer) == 0


@pytest.mark.asyncio
async def test_coalescer_propagates_errors_and_forgets_key():
    coalescer = RequestCoalescer()

    async def failing():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await coalescer.run("k", failing)

    async def succeeding():
        return 42

    assert await coalescer.run("k", succeeding) == 42
