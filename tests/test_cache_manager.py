"""Tests for the embedding LRU cache."""

import threading

import pytest

from asset_search.retrievers.cache_manager import EmbeddingCache

VECTOR_1 = [0.5] * 8
VECTOR_2 = [0.7] * 8


def test_set_then_get_returns_vector():
    """A stored vector is returned for the same query."""
    cache = EmbeddingCache(max_size=10)
    cache.set("test query", VECTOR_1)

    assert cache.get("test query") == VECTOR_1
    assert len(cache) == 1


def test_missing_query_returns_none():
    """Unknown queries miss."""
    assert EmbeddingCache().get("nonexistent query") is None


def test_keys_are_trimmed_and_case_folded():
    """Whitespace/case variants share one entry."""
    cache = EmbeddingCache(max_size=10)
    cache.set(" TEST Query ", VECTOR_1)

    assert cache.get("test query") == VECTOR_1
    assert cache.get("  TEST QUERY  ") == VECTOR_1
    assert len(cache) == 1


def test_whitespace_only_query_normalizes_to_empty_key():
    """Blank queries collapse to the empty key."""
    cache = EmbeddingCache(max_size=10)
    cache.set("   ", VECTOR_1)
    assert cache.get("") == VECTOR_1


def test_least_recently_used_entry_is_evicted():
    """Inserting capacity + 1 keys evicts the oldest untouched key."""
    cache = EmbeddingCache(max_size=3)
    cache.set("q1", VECTOR_1)
    cache.set("q2", VECTOR_1)
    cache.set("q3", VECTOR_1)

    # touch q1 so q2 becomes least recently used
    assert cache.get("q1") == VECTOR_1
    cache.set("q4", VECTOR_2)

    assert cache.get("q2") is None
    assert cache.get("q1") == VECTOR_1
    assert cache.get("q4") == VECTOR_2
    assert len(cache) == 3
    assert cache.metrics()["evictions"] == 1


def test_many_evictions_keep_capacity():
    """Overflowing by N evicts exactly N entries, oldest first."""
    cache = EmbeddingCache(max_size=100)
    for i in range(150):
        cache.set(f"query{i}", VECTOR_1)

    metrics = cache.metrics()
    assert metrics["evictions"] == 50
    assert metrics["size"] == 100
    assert cache.get("query0") is None
    assert cache.get("query49") is None
    assert cache.get("query149") == VECTOR_1


def test_updating_existing_key_does_not_evict():
    """Re-setting a key replaces it without growing the cache."""
    cache = EmbeddingCache(max_size=2)
    cache.set("q1", VECTOR_1)
    cache.set("q2", VECTOR_1)
    cache.set("q1", VECTOR_2)

    assert len(cache) == 2
    assert cache.get("q1") == VECTOR_2
    assert cache.metrics()["evictions"] == 0


def test_hit_rate_tracking():
    """hit_rate is hits / (hits + misses)."""
    cache = EmbeddingCache()
    cache.set("q1", VECTOR_1)
    for _ in range(3):
        cache.get("q1")
    cache.get("nonexistent")

    metrics = cache.metrics()
    assert metrics["hits"] == 3
    assert metrics["misses"] == 1
    assert metrics["hit_rate"] == pytest.approx(0.75)


def test_hit_rate_with_no_requests_is_zero():
    """No division by zero before the first lookup."""
    metrics = EmbeddingCache().metrics()
    assert metrics == {"hits": 0, "misses": 0, "evictions": 0, "size": 0, "hit_rate": 0.0}


def test_clear_resets_entries_and_counters():
    """clear() isolates tests from each other."""
    cache = EmbeddingCache(max_size=1)
    cache.set("q1", VECTOR_1)
    cache.set("q2", VECTOR_1)
    cache.get("q2")
    cache.get("q3")

    cache.clear()
    assert cache.metrics() == {"hits": 0, "misses": 0, "evictions": 0, "size": 0, "hit_rate": 0.0}


def test_vectors_are_not_shared():
    """Callers get copies of the stored vector."""
    cache = EmbeddingCache(max_size=2)
    source = [1.0, 2.0]
    cache.set("q", source)
    source.append(3.0)

    returned = cache.get("q")
    returned.append(4.0)

    assert cache.get("q") == [1.0, 2.0]


def test_independent_instances_do_not_share_state():
    """Each cache instance is isolated."""
    first, second = EmbeddingCache(), EmbeddingCache()
    first.set("q", VECTOR_1)
    assert second.get("q") is None


def test_invalid_capacity_rejected():
    """Capacity must be positive."""
    with pytest.raises(ValueError):
        EmbeddingCache(max_size=0)


def test_concurrent_access_keeps_capacity_bound():
    """Parallel writers never push the cache past capacity."""
    cache = EmbeddingCache(max_size=50)

    def writer(offset: int):
        for i in range(200):
            cache.set(f"w{offset}-{i}", VECTOR_1)
            cache.get(f"w{offset}-{i // 2}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    metrics = cache.metrics()
    assert metrics["size"] == 50
    assert metrics["evictions"] == 4 * 200 - 50
