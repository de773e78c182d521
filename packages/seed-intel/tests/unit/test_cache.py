"""Tests for TTLCache class."""

import pytest

from seed_intel.cache import TTLCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCacheInit:
    """Tests for TTLCache.__init__()."""

    def test_init_empty_cache(self) -> None:
        """Test initialization creates empty cache."""
        cache = TTLCache()

        assert len(cache) == 0

    def test_init_rejects_non_positive_ttl(self) -> None:
        """Test ttl must be positive."""
        with pytest.raises(ValueError, match="ttl_seconds"):
            TTLCache(ttl_seconds=0)


class TestTTLCacheGet:
    """Tests for TTLCache.get()."""

    def test_get_missing(self) -> None:
        """Test missing key returns None."""
        cache = TTLCache()

        assert cache.get(("db", "abc")) is None

    def test_get_before_expiry(self) -> None:
        """Test value is returned within its lifetime."""
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.put("key", "value")
        clock.now = 9.9

        assert cache.get("key") == "value"
        assert "key" in cache

    def test_get_after_expiry(self) -> None:
        """Test expired entries are evicted on lookup."""
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.put("key", "value")
        clock.now = 10.0

        assert "key" not in cache
        assert cache.get("key") is None
        assert len(cache) == 0

    def test_put_refreshes_lifetime(self) -> None:
        """Test replacing an entry restarts its TTL."""
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.put("key", "old")
        clock.now = 8.0
        cache.put("key", "new")
        clock.now = 15.0

        assert cache.get("key") == "new"


class TestTTLCacheInvalidate:
    """Tests for TTLCache.invalidate() and clear()."""

    def test_invalidate(self) -> None:
        """Test invalidating one entry."""
        cache = TTLCache()
        cache.put("a", 1)
        cache.put("b", 2)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.get("b") == 2

    def test_clear(self) -> None:
        """Test clearing all entries."""
        cache = TTLCache()
        cache.put("a", 1)
        cache.put("b", 2)
        cache.clear()

        assert len(cache) == 0


class TestTTLCacheStats:
    """Tests for TTLCache.stats()."""

    def test_hit_rate(self) -> None:
        """Test hit and miss counters."""
        cache = TTLCache()
        cache.put("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("missing")

        stats = cache.stats()

        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.entries == 1
        assert stats.hit_rate == pytest.approx(2 / 3)

    def test_hit_rate_without_lookups(self) -> None:
        """Test hit rate is zero before any lookup."""
        assert TTLCache().stats().hit_rate == 0.0
