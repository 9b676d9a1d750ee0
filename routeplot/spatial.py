"""Uniform-grid spatial index over node bounding boxes."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import TYPE_CHECKING, Iterable, Iterator

from .geometry import expand_rect, rects_overlap, segment_bounds, segment_intersects_rect

if TYPE_CHECKING:
    from .models import NodeBox, Point, Rect

logger = logging.getLogger(__name__)


class SpatialIndex:
    """Buckets obstacles into square cells keyed by ``floor(coord / grid_size)``.

    An obstacle is registered in every cell its bounding box overlaps, so a
    rectangle query only has to visit the cells the query covers. Candidates
    are filtered against their exact bounds before being returned.
    """

    def __init__(self, grid_size: float = 500.0) -> None:
        if grid_size <= 0:
            raise ValueError(f"grid_size must be > 0, got {grid_size}")
        self.grid_size = grid_size
        self._cells: dict[tuple[int, int], list[NodeBox]] = defaultdict(list)
        self._obstacles: dict[str, NodeBox] = {}

    def __len__(self) -> int:
        return len(self._obstacles)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._obstacles

    def __iter__(self) -> Iterator[NodeBox]:
        return iter(self._obstacles.values())

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    def cell_of(self, point: Point) -> tuple[int, int]:
        return (
            math.floor(point[0] / self.grid_size),
            math.floor(point[1] / self.grid_size),
        )

    def _cells_for(self, rect: Rect) -> Iterator[tuple[int, int]]:
        min_cx, min_cy = self.cell_of((rect[0], rect[1]))
        max_cx, max_cy = self.cell_of((rect[2], rect[3]))
        for cx in range(min_cx, max_cx + 1):
            for cy in range(min_cy, max_cy + 1):
                yield (cx, cy)

    def insert(self, obstacles: Iterable[NodeBox]) -> None:
        """Add obstacles; an obstacle with a known id replaces the old one."""
        for node in obstacles:
            if node.id in self._obstacles:
                self.remove(node.id)
            self._obstacles[node.id] = node
            for cell in self._cells_for(node.bounds):
                self._cells[cell].append(node)

    def remove(self, node_id: str) -> bool:
        """Drop an obstacle. Returns False if it was not indexed."""
        node = self._obstacles.pop(node_id, None)
        if node is None:
            return False
        for cell in self._cells_for(node.bounds):
            bucket = self._cells.get(cell)
            if bucket is None:
                continue
            bucket[:] = [n for n in bucket if n.id != node_id]
            if not bucket:
                del self._cells[cell]
        return True

    def rebuild(self, obstacles: Iterable[NodeBox]) -> None:
        """Replace the whole obstacle set."""
        self.clear()
        self.insert(obstacles)
        logger.debug(
            "Rebuilt spatial index: %d obstacles in %d cells",
            len(self._obstacles),
            len(self._cells),
        )

    def clear(self) -> None:
        self._cells.clear()
        self._obstacles.clear()

    def query_rect(
        self,
        min_x: float,
        min_y: float,
        max_x: float,
        max_y: float,
    ) -> list[NodeBox]:
        """Obstacles whose bounds overlap the rectangle (borders included)."""
        rect = (min_x, min_y, max_x, max_y)
        seen: dict[str, NodeBox] = {}
        for cell in self._cells_for(rect):
            for node in self._cells.get(cell, ()):
                if node.id not in seen and rects_overlap(node.bounds, rect):
                    seen[node.id] = node
        return list(seen.values())

    def query_segment(
        self,
        a: Point,
        b: Point,
        margin: float = 0.0,
        exclude: Iterable[str] = (),
    ) -> list[NodeBox]:
        """Obstacles whose bounds, grown by ``margin``, the segment a-b crosses.

        Args:
            a: Segment start
            b: Segment end
            margin: Clearance added around every obstacle
            exclude: Node ids to ignore (typically the connection's endpoints)

        Returns:
            Colliding obstacles in index order
        """
        excluded = set(exclude)
        hits = []
        for node in self.query_rect(*segment_bounds(a, b, margin)):
            if node.id in excluded:
                continue
            if segment_intersects_rect(a, b, expand_rect(node.bounds, margin)):
                hits.append(node)
        return hits

    def count_collisions(
        self,
        a: Point,
        b: Point,
        margin: float = 0.0,
        exclude: Iterable[str] = (),
    ) -> int:
        return len(self.query_segment(a, b, margin, exclude))
