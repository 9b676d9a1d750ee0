"""Tests for the path cache and drag overrides."""

import pytest

from conftest import FakeClock
from routeplot.cache import DragOverrides, PathCache
from routeplot.config import RoutingConfig
from routeplot.models import NodeBox, RenderLevel

HIGH = RenderLevel.HIGH


@pytest.fixture
def cache(clock):
    return PathCache(capacity=10, ttl_ms=1000, evict_fraction=0.2, clock=clock)


class TestPathCache:
    """Tests for PathCache."""

    def test_miss_then_hit(self, cache):
        assert cache.get("k") is None
        cache.put("k", "M 0 0 L 10 0", HIGH)
        entry = cache.get("k")
        assert entry.path_data == "M 0 0 L 10 0"
        assert entry.complexity == 2
        assert (cache.hits, cache.misses) == (1, 1)
        assert cache.hit_rate == 0.5

    def test_hit_rate_without_lookups(self, cache):
        assert cache.hit_rate == 0.0

    def test_put_replaces(self, cache):
        cache.put("k", "M 0 0 L 1 1", HIGH, node_ids=("a",))
        cache.put("k", "M 0 0 L 2 2", HIGH, node_ids=("b",))
        assert len(cache) == 1
        assert cache.get("k").path_data == "M 0 0 L 2 2"
        assert cache.invalidate("a") == 0

    def test_ttl_expiry(self, cache, clock):
        cache.put("k", "M 0 0 L 1 1", HIGH)
        clock.advance(1000)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_eviction_drops_oldest_fraction(self, cache, clock):
        for i in range(10):
            cache.put(f"k{i}", "M 0 0 L 1 1", HIGH)
            clock.advance(1)
        cache.put("newest", "M 0 0 L 1 1", HIGH)

        assert len(cache) == 9
        assert "newest" in cache
        assert "k0" not in cache and "k1" not in cache
        assert "k2" in cache
        assert cache.evictions == 2

    def test_never_exceeds_capacity(self, cache, clock):
        for i in range(57):
            cache.put(f"k{i}", "M 0 0 L 1 1", HIGH)
            clock.advance(1)
            assert len(cache) <= cache.capacity
        assert "k56" in cache

    def test_capacity_one(self, clock):
        cache = PathCache(capacity=1, clock=clock)
        cache.put("a", "M 0 0", HIGH)
        cache.put("b", "M 0 0", HIGH)
        assert len(cache) == 1
        assert "b" in cache

    def test_invalidate_by_node(self, cache):
        cache.put("ab", "M 0 0", HIGH, node_ids=("a", "b"))
        cache.put("bc", "M 0 0", HIGH, node_ids=("b", "c"))
        cache.put("cd", "M 0 0", HIGH, node_ids=("c", "d"))

        assert cache.invalidate("b") == 2
        assert "ab" not in cache and "bc" not in cache
        assert "cd" in cache
        assert cache.invalidate("b") == 0
        assert cache.invalidate("a") == 0

    def test_purge_expired(self, cache, clock):
        cache.put("old", "M 0 0", HIGH)
        clock.advance(600)
        cache.put("new", "M 0 0", HIGH)
        clock.advance(600)
        assert cache.purge_expired() == 1
        assert "new" in cache

    def test_clear_and_stats(self, cache):
        cache.put("k", "M 0 0", HIGH)
        cache.get("k")
        cache.clear()
        stats = cache.stats()
        assert stats["size"] == 0
        assert stats["hits"] == 1
        assert stats["capacity"] == 10

    def test_from_config(self):
        cache = PathCache.from_config(RoutingConfig.mobile(), clock=FakeClock())
        assert cache.capacity == 100
        assert cache.ttl_ms == 300_000

    @pytest.mark.parametrize(
        "kwargs",
        [{"capacity": 0}, {"ttl_ms": 0}, {"evict_fraction": 0}, {"evict_fraction": 1.5}],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            PathCache(**kwargs)


class TestDragOverrides:
    """Tests for DragOverrides."""

    def test_apply_moves_node(self):
        overrides = DragOverrides()
        node = NodeBox("a", 0, 0, 100, 50)
        overrides.update("a", 30, 40)
        moved = overrides.apply(node)
        assert (moved.x, moved.y, moved.width) == (30, 40, 100)
        assert overrides.is_dragging("a")

    def test_begin_without_position_keeps_geometry(self):
        overrides = DragOverrides()
        overrides.begin("a")
        node = NodeBox("a", 5, 5)
        assert overrides.apply(node) is node
        assert overrides.active == frozenset({"a"})

    def test_end(self):
        overrides = DragOverrides()
        overrides.update("a", 1, 2)
        assert overrides.end("a") == (1, 2)
        assert not overrides.is_dragging("a")
        assert overrides.end("a") is None
        assert len(overrides) == 0
