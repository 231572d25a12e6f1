"""Tests for the TTL cache."""

import pytest

from wicketwise.cache import TTLCache, content_key


class TestTTLCache:
    def test_hit_within_ttl(self, clock):
        cache = TTLCache(300, clock=clock)
        cache.set(("pulse", "m1"), "value")
        clock.advance(299)
        assert cache.get(("pulse", "m1")) == "value"
        assert cache.hits == 1

    def test_expires_at_ttl(self, clock):
        cache = TTLCache(300, clock=clock)
        cache.set("k", "value")
        clock.advance(300)
        assert cache.get("k") is None
        assert len(cache) == 0
        assert cache.misses == 1

    def test_missing_key(self, clock):
        cache = TTLCache(10, clock=clock)
        assert cache.get("absent") is None

    def test_set_refreshes_timestamp(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("k", 1)
        clock.advance(8)
        cache.set("k", 2)
        clock.advance(8)
        assert cache.get("k") == 2

    def test_purge_expired(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("old", 1)
        clock.advance(6)
        cache.set("new", 2)
        clock.advance(5)
        assert cache.purge_expired() == 1
        assert cache.get("new") == 2

    def test_zero_ttl_never_hits(self, clock):
        cache = TTLCache(0, clock=clock)
        cache.set("k", 1)
        assert cache.get("k") is None

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            TTLCache(-1)


class TestContentKey:
    def test_stable(self):
        assert content_key("dew expected") == content_key("dew expected")

    def test_distinguishes_content(self):
        assert content_key("dew expected") != content_key("no dew")

    def test_none_matches_empty(self):
        assert content_key(None) == content_key("")
