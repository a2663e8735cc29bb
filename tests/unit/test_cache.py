"""Unit tests for the room listing cache."""
import time

from confbook.cache import ListingCache


class TestListingCache:
    """Test the TTL cache wrapper."""

    def test_cache_set_and_get(self):
        cache = ListingCache[str](ttl=60)

        cache.set("key1", "value1")
        assert cache.get("key1") == "value1"

    def test_cache_get_nonexistent_key(self):
        assert ListingCache[str](ttl=60).get("nonexistent") is None

    def test_cache_ttl_expiration(self):
        """Values expire after the TTL."""
        cache = ListingCache[str](ttl=1)

        cache.set("key1", "value1")
        time.sleep(1.1)

        assert cache.get("key1") is None

    def test_invalidate_drops_everything(self):
        cache = ListingCache[list](ttl=60)
        cache.set("a", [1])
        cache.set("b", [2])

        cache.invalidate()

        assert cache.get("a") is None
        assert cache.get("b") is None

    def test_key_ignores_amenity_order_and_location_case(self):
        first = ListingCache.key(4, "Floor 1", ["tv", "whiteboard"], False)
        second = ListingCache.key(4, "floor 1", ["whiteboard", "tv", "tv"], False)

        assert first == second

    def test_key_separates_filters(self):
        assert ListingCache.key(4) != ListingCache.key(5)
        assert ListingCache.key(include_inactive=True) != ListingCache.key()
