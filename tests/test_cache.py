"""Tests for the TTL-aware cache store and key derivation."""

from __future__ import annotations

import threading

import pytest
from image_fusion.providers.base import AnalysisOptions
from image_fusion.services.cache import CacheStore, make_cache_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_put_and_get():
    cache = CacheStore(max_size=2, ttl=60)
    cache.put("a", 1)

    assert cache.get("a") == (1, True)
    assert cache.get("b") == (None, False)
    assert "a" in cache
    assert len(cache) == 1


def test_evicts_oldest_insertion_first():
    cache = CacheStore(max_size=3, ttl=60)
    for index, key in enumerate(["a", "b", "c", "d"]):
        cache.put(key, index)

    assert len(cache) == 3
    assert cache.keys() == ["b", "c", "d"]
    assert cache.get("a") == (None, False)


def test_reads_do_not_refresh_eviction_order():
    cache = CacheStore(max_size=2, ttl=60)
    cache.put("a", 1)
    cache.put("b", 2)
    cache.get("a")
    cache.put("c", 3)

    assert cache.keys() == ["b", "c"]


def test_expired_entries_are_misses():
    clock = FakeClock()
    cache = CacheStore(max_size=5, ttl=10, clock=clock)
    cache.put("a", "value")

    clock.now += 10
    assert cache.get("a") == ("value", True)

    clock.now += 0.5
    assert cache.get("a") == (None, False)
    assert "a" not in cache


def test_purge_expired():
    clock = FakeClock()
    cache = CacheStore(max_size=5, ttl=10, clock=clock)
    cache.put("old", 1)
    clock.now += 8
    cache.put("new", 2)
    clock.now += 5

    assert cache.purge_expired() == 1
    assert cache.keys() == ["new"]


def test_zero_size_disables_cache():
    cache = CacheStore(max_size=0, ttl=10)
    cache.put("a", 1)
    assert len(cache) == 0


def test_invalid_arguments():
    with pytest.raises(ValueError):
        CacheStore(max_size=-1, ttl=10)
    with pytest.raises(ValueError):
        CacheStore(max_size=1, ttl=0)


def test_cache_key_ignores_option_order_and_force_refresh():
    first = AnalysisOptions.coerce({"mode": "quick", "domain": "Ecommerce"})
    second = AnalysisOptions.coerce({"domain": "ecommerce ", "mode": "quick", "forceRefresh": True})

    assert make_cache_key(b"img", first) == make_cache_key(b"img", second)


def test_cache_key_depends_on_payload_and_options():
    options = AnalysisOptions()
    assert make_cache_key(b"one", options) != make_cache_key(b"two", options)
    assert make_cache_key(b"one", options) != make_cache_key(
        b"one", AnalysisOptions(mode="quick")
    )


def test_concurrent_puts_and_gets_respect_max_size():
    cache = CacheStore(max_size=10, ttl=60)
    errors: list[Exception] = []

    def worker(offset: int) -> None:
        try:
            for index in range(200):
                key = f"key-{(index + offset) % 50}"
                cache.put(key, index)
                cache.get(key)
                cache.purge_expired()
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(offset,)) for offset in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(cache) <= 10
    assert len(set(cache.keys())) == len(cache)
