"""Viewport culling and level-of-detail classification."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Iterable, Mapping

from .geometry import distance, rects_overlap, segment_intersects_rect
from .models import RenderLevel

if TYPE_CHECKING:
    from .models import Connection, NodeBox, Point, ViewportBounds
    from .spatial import SpatialIndex

logger = logging.getLogger(__name__)


class ViewportCuller:
    """Decides which connections are worth routing for the current view.

    The viewport is grown by ``margin / zoom`` so connections just off
    screen are ready before they scroll in.
    """

    def __init__(self, margin: float = 100.0, spatial_query_threshold: int = 200) -> None:
        self.margin = margin
        self.spatial_query_threshold = spatial_query_threshold

    def expanded_bounds(
        self,
        viewport: ViewportBounds,
        zoom: float | None = None,
    ) -> ViewportBounds:
        zoom = viewport.scale if zoom is None else zoom
        if not math.isfinite(zoom) or zoom <= 0:
            raise ValueError(f"zoom must be a positive number, got {zoom}")
        return viewport.expanded(self.margin / zoom)

    def should_render_connection(
        self,
        source: NodeBox,
        target: NodeBox,
        viewport: ViewportBounds,
        zoom: float | None = None,
    ) -> bool:
        """Visible if either node overlaps the expanded viewport, or the line
        between their centres crosses it."""
        bounds = self.expanded_bounds(viewport, zoom).rect
        if rects_overlap(source.bounds, bounds) or rects_overlap(target.bounds, bounds):
            return True
        return segment_intersects_rect(source.center, target.center, bounds)

    def visible_connections(
        self,
        connections: Iterable[Connection],
        nodes: Mapping[str, NodeBox],
        viewport: ViewportBounds,
        zoom: float | None = None,
        index: SpatialIndex | None = None,
    ) -> list[str]:
        """Ids of the connections to route, in input order.

        Args:
            connections: Candidate connections
            nodes: Node snapshot by id
            viewport: Visible region
            zoom: Zoom factor, defaults to ``viewport.scale``
            index: When given, node visibility comes from one grid query
                instead of a per-node overlap test

        Returns:
            Visible connection ids; connections with unknown endpoints are
            logged and skipped
        """
        bounds = self.expanded_bounds(viewport, zoom).rect
        visible_nodes: set[str] | None = None
        if index is not None:
            visible_nodes = {node.id for node in index.query_rect(*bounds)}

        visible = []
        for conn in connections:
            source = nodes.get(conn.source_node_id)
            target = nodes.get(conn.target_node_id)
            if source is None or target is None:
                missing = conn.source_node_id if source is None else conn.target_node_id
                logger.warning("Skipping connection %s: unknown node '%s'", conn.id, missing)
                continue

            if visible_nodes is not None:
                on_screen = source.id in visible_nodes or target.id in visible_nodes
            else:
                on_screen = rects_overlap(source.bounds, bounds) or rects_overlap(
                    target.bounds, bounds
                )
            if on_screen or segment_intersects_rect(source.center, target.center, bounds):
                visible.append(conn.id)
        return visible

    def calculate_level_of_detail(self, source: Point, target: Point, zoom: float) -> RenderLevel:
        """Detail tier from zoom and on-screen connection length."""
        scaled_distance = distance(source, target) * zoom
        if zoom >= 1.0 and scaled_distance <= 500:
            return RenderLevel.HIGH
        if zoom >= 0.5 and scaled_distance <= 1000:
            return RenderLevel.MEDIUM
        return RenderLevel.LOW
