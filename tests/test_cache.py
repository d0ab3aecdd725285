import pytest

from donation_tts.cache import TranslationCache


def test_cache_hit_and_miss_counters() -> None:
    cache = TranslationCache()
    assert cache.get("salam") is None
    cache.put("salam", "سَلَام")
    assert cache.get("salam") == "سَلَام"

    stats = cache.stats()
    assert (stats.entries, stats.hits, stats.misses) == (1, 1, 1)
    assert stats.hit_rate == 0.5


def test_cache_evicts_least_recently_used() -> None:
    cache = TranslationCache(max_entries=2)
    cache.put("a", "1")
    cache.put("b", "2")
    cache.get("a")
    cache.put("c", "3")

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
    assert cache.stats().evictions == 1


def test_cache_zero_bound_never_evicts() -> None:
    cache = TranslationCache(max_entries=0)
    for i in range(5000):
        cache.put(str(i), str(i))
    assert len(cache) == 5000


def test_cache_rejects_negative_bound() -> None:
    with pytest.raises(ValueError):
        TranslationCache(max_entries=-1)
