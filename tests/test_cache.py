"""Tests for the TTL cache."""

from repolens.cache import TTLCache, make_key


class TestMakeKey:
    def test_case_insensitive(self):
        assert make_key("Octo", "Demo", "week") == make_key("octo", "demo", "week")

    def test_range_is_part_of_key(self):
        assert make_key("octo", "demo", "week") != make_key("octo", "demo", "month")


class TestTTLCache:
    def test_hit_within_ttl(self, clock):
        cache = TTLCache(ttl=300, clock=clock)
        cache.set("k", {"v": 1})
        clock.advance(300)
        assert cache.get("k") == {"v": 1}

    def test_expired_entry_is_evicted_on_read(self, clock):
        cache = TTLCache(ttl=300, clock=clock)
        cache.set("k", "value")
        clock.advance(301)
        assert "k" in cache
        assert cache.get("k") is None
        assert "k" not in cache
        assert len(cache) == 0

    def test_miss(self, clock):
        assert TTLCache(clock=clock).get("nope") is None

    def test_set_refreshes_timestamp(self, clock):
        cache = TTLCache(ttl=10, clock=clock)
        cache.set("k", 1)
        clock.advance(8)
        cache.set("k", 2)
        clock.advance(8)
        assert cache.get("k") == 2
