"""Path cache with TTL expiry, fractional eviction and per-node invalidation."""

from __future__ import annotations

import heapq
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable

from .paths import path_complexity

if TYPE_CHECKING:
    from .config import RoutingConfig
    from .models import NodeBox, Point, RenderLevel

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class PathCacheEntry:
    """A serialized path and when it was computed."""

    key: str
    path_data: str
    last_updated: float  # Clock milliseconds
    complexity: int
    render_level: RenderLevel
    node_ids: tuple[str, ...] = ()
    label_anchor: Point | None = None
    degraded: bool = False


class PathCache:
    """Keyed store of serialized paths.

    Entries expire ``ttl_ms`` after they were stored. When the cache is
    full, the oldest ``evict_fraction`` of entries is dropped in one go.
    A reverse index from node id to keys backs :meth:`invalidate`.
    """

    def __init__(
        self,
        capacity: int = 1000,
        ttl_ms: float = 5 * 60 * 1000,
        evict_fraction: float = 0.2,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be > 0, got {ttl_ms}")
        if not 0 < evict_fraction <= 1:
            raise ValueError(f"evict_fraction must be in (0, 1], got {evict_fraction}")
        self.capacity = capacity
        self.ttl_ms = ttl_ms
        self.evict_fraction = evict_fraction
        self._clock = clock or monotonic_ms
        self._entries: dict[str, PathCacheEntry] = {}
        self._by_node: dict[str, set[str]] = defaultdict(set)
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @classmethod
    def from_config(
        cls,
        config: RoutingConfig,
        clock: Callable[[], float] | None = None,
    ) -> PathCache:
        return cls(config.cache_capacity, config.cache_ttl_ms, config.cache_evict_fraction, clock)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def _expired(self, entry: PathCacheEntry, now: float) -> bool:
        return now - entry.last_updated > self.ttl_ms

    def get(self, key: str) -> PathCacheEntry | None:
        """Look up a live entry; an expired one is discarded and counts as a miss."""
        entry = self._entries.get(key)
        if entry is not None and self._expired(entry, self._clock()):
            self._discard(key)
            entry = None
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(
        self,
        key: str,
        path_data: str,
        render_level: RenderLevel,
        node_ids: Iterable[str] = (),
        label_anchor: Point | None = None,
        degraded: bool = False,
    ) -> PathCacheEntry:
        """Store a path, replacing any entry with the same key.

        Inserting a new key into a full cache first evicts the oldest
        entries.
        """
        if key in self._entries:
            self._discard(key)
        elif len(self._entries) >= self.capacity:
            self._evict()

        entry = PathCacheEntry(
            key=key,
            path_data=path_data,
            last_updated=self._clock(),
            complexity=path_complexity(path_data),
            render_level=render_level,
            node_ids=tuple(node_ids),
            label_anchor=label_anchor,
            degraded=degraded,
        )
        self._entries[key] = entry
        for node_id in entry.node_ids:
            self._by_node[node_id].add(key)
        return entry

    def _discard(self, key: str) -> PathCacheEntry | None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        for node_id in entry.node_ids:
            keys = self._by_node.get(node_id)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._by_node[node_id]
        return entry

    def _evict(self) -> None:
        count = max(1, int(self.capacity * self.evict_fraction))
        oldest = heapq.nsmallest(count, self._entries.values(), key=lambda e: e.last_updated)
        for entry in oldest:
            self._discard(entry.key)
        self.evictions += len(oldest)
        logger.debug("Evicted %d path cache entries (capacity %d)", len(oldest), self.capacity)

    def invalidate(self, node_id: str) -> int:
        """Drop every entry routed through ``node_id``. Returns how many."""
        keys = self._by_node.pop(node_id, set())
        for key in keys:
            self._discard(key)
        if keys:
            logger.debug("Invalidated %d cached paths for node %s", len(keys), node_id)
        return len(keys)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            self._discard(key)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._by_node.clear()

    def stats(self) -> dict[str, float]:
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hit_rate,
        }


class DragOverrides:
    """Positions of nodes being dragged, kept apart from the cache.

    The engine reads node geometry through :meth:`apply`, so a drag moves
    connections without invalidating anything until the drag ends.
    """

    def __init__(self) -> None:
        self._positions: dict[str, Point | None] = {}

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._positions)

    def begin(self, node_id: str) -> None:
        self._positions.setdefault(node_id, None)

    def update(self, node_id: str, x: float, y: float) -> None:
        """Record the dragged top-left position (starts a drag if needed)."""
        self._positions[node_id] = (x, y)

    def end(self, node_id: str) -> Point | None:
        """Stop tracking ``node_id``; returns its last dragged position."""
        return self._positions.pop(node_id, None)

    def is_dragging(self, node_id: str) -> bool:
        return node_id in self._positions

    def position(self, node_id: str) -> Point | None:
        return self._positions.get(node_id)

    def apply(self, node: NodeBox) -> NodeBox:
        position = self._positions.get(node.id)
        if position is None:
            return node
        return node.moved_to(*position)
