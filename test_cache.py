"""Bounded response cache: FIFO eviction, read-only lookups, fixed capacity."""

import pytest

from cache import BoundedResponseCache
from models import CacheEntry


def _entry(key: str) -> CacheEntry:
    return CacheEntry(key=key, reply=f"reply for {key}", model="gpt-4o-mini")


def _fill(cache: BoundedResponseCache, keys) -> None:
    for key in keys:
        cache.insert(key, _entry(key))


def test_lookup_miss_returns_none():
    cache = BoundedResponseCache(capacity=3)

    assert cache.lookup("absent") is None
    assert len(cache) == 0


def test_insert_then_lookup():
    cache = BoundedResponseCache(capacity=3)
    cache.insert("a", _entry("a"))

    assert cache.lookup("a") == _entry("a")
    assert "a" in cache


def test_overflow_evicts_first_inserted_only():
    capacity = 5
    cache = BoundedResponseCache(capacity=capacity)
    keys = [f"k{i}" for i in range(capacity + 1)]

    _fill(cache, keys)

    assert len(cache) == capacity
    assert cache.lookup("k0") is None
    for key in keys[1:]:
        assert cache.lookup(key) is not None


def test_hits_do_not_refresh_position():
    """FIFO, not LRU: a hot entry is still the first to go."""
    cache = BoundedResponseCache(capacity=3)
    _fill(cache, ["a", "b", "c"])

    for _ in range(10):
        assert cache.lookup("a") is not None

    evicted = cache.insert("d", _entry("d"))

    assert evicted == _entry("a")
    assert cache.lookup("a") is None
    assert all(cache.lookup(k) is not None for k in ["b", "c", "d"])


def test_reinsert_existing_key_replaces_without_evicting():
    cache = BoundedResponseCache(capacity=2)
    _fill(cache, ["a", "b"])

    replacement = CacheEntry(key="a", reply="newer", model="gpt-4o-mini")
    assert cache.insert("a", replacement) is None

    assert len(cache) == 2
    assert cache.lookup("a").reply == "newer"

    # "a" keeps its original (oldest) slot
    cache.insert("c", _entry("c"))
    assert cache.lookup("a") is None
    assert cache.lookup("b") is not None


def test_size_never_exceeds_capacity():
    cache = BoundedResponseCache(capacity=4)
    for i in range(50):
        cache.insert(f"k{i}", _entry(f"k{i}"))
        assert len(cache) <= 4


def test_stats_track_evictions():
    cache = BoundedResponseCache(capacity=2)
    _fill(cache, ["a", "b", "c", "d"])

    stats = cache.stats()

    assert stats.stored_items == 2
    assert stats.capacity == 2
    assert stats.evictions == 2


@pytest.mark.parametrize("capacity", [0, -1])
def test_capacity_must_be_positive(capacity):
    with pytest.raises(ValueError):
        BoundedResponseCache(capacity=capacity)
