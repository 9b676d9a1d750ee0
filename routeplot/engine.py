"""Routing engine: one instance per diagram session.

The engine owns the path cache, the obstacle index, drag overrides and the
update scheduler. Hosts feed it node geometry and connections through a
:class:`DiagramSource` and get serialized SVG path data back.

Example:
    >>> source = DiagramSnapshot(nodes, connections)
    >>> engine = RoutingEngine(source)
    >>> engine.set_viewport(ViewportBounds(0, 0, 1200, 800))
    >>> for conn_id in engine.get_visible_connections():
    ...     result = engine.compute_path(source.connection(conn_id))
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Protocol, Sequence

from . import grouping
from .cache import DragOverrides, PathCache, monotonic_ms
from .config import RoutingConfig
from .culling import ViewportCuller
from .exceptions import DegenerateInputError, UnknownReferenceError
from .geometry import port_side, resolve_port_position
from .grouping import BundleDecision, ConnectionTopology, GroupInfo, group_key
from .models import (
    Connection,
    EngineMetrics,
    NodeBox,
    PathResult,
    RenderLevel,
    RoutedPath,
    RoutingMode,
    ViewportBounds,
)
from .paths import (
    RouteRequest,
    connection_offset,
    generate_path,
    label_anchor,
    simplify_for_level,
    straight_path,
)
from .scheduler import FrameScheduler, ManualFrameScheduler, UpdateScheduler
from .spatial import SpatialIndex

logger = logging.getLogger(__name__)


class DiagramSource(Protocol):
    """Snapshot accessors the host provides."""

    def get_node(self, node_id: str) -> NodeBox | None:
        ...

    def get_nodes(self) -> Iterable[NodeBox]:
        ...

    def get_connections(self) -> Sequence[Connection]:
        ...


class DiagramSnapshot:
    """In-memory :class:`DiagramSource`."""

    def __init__(
        self,
        nodes: Iterable[NodeBox] = (),
        connections: Iterable[Connection] = (),
    ) -> None:
        self.nodes: dict[str, NodeBox] = {node.id: node for node in nodes}
        self.connections: list[Connection] = list(connections)

    def get_node(self, node_id: str) -> NodeBox | None:
        return self.nodes.get(node_id)

    def get_nodes(self) -> list[NodeBox]:
        return list(self.nodes.values())

    def get_connections(self) -> list[Connection]:
        return self.connections

    def connection(self, connection_id: str) -> Connection | None:
        for conn in self.connections:
            if conn.id == connection_id:
                return conn
        return None

    def upsert_node(self, node: NodeBox) -> None:
        self.nodes[node.id] = node

    def remove_node(self, node_id: str) -> NodeBox | None:
        return self.nodes.pop(node_id, None)

    def add_connection(self, connection: Connection) -> None:
        self.connections.append(connection)

    def remove_connection(self, connection_id: str) -> bool:
        before = len(self.connections)
        self.connections = [c for c in self.connections if c.id != connection_id]
        return len(self.connections) != before


class RoutingEngine:
    """Computes, culls, caches and schedules connection paths for one diagram.

    Args:
        source: Node and connection snapshot accessor
        config: Routing configuration (defaults to ``RoutingConfig()``)
        frames: Paint-frame scheduler; a :class:`ManualFrameScheduler` if omitted
        clock: Millisecond clock for cache expiry
    """

    def __init__(
        self,
        source: DiagramSource,
        config: RoutingConfig | None = None,
        frames: FrameScheduler | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.source = source
        self.config = config or RoutingConfig()
        self.cache = PathCache.from_config(self.config, clock=clock or monotonic_ms)
        self.index = SpatialIndex(self.config.grid_size)
        self.overrides = DragOverrides()
        self.culler = ViewportCuller(self.config.culling_margin, self.config.spatial_query_threshold)
        self.frames = frames or ManualFrameScheduler()
        self.scheduler = UpdateScheduler(self.frames, self.config.batch_size)
        self.viewport: ViewportBounds | None = None

        self._last_known: dict[str, NodeBox] = {}
        self._topology: ConnectionTopology | None = None
        self._obstacle_revision = 0
        self._visible_count = 0
        self._last_compute_ms = 0.0

        self.rebuild_obstacles()

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    @property
    def zoom(self) -> float:
        return self.viewport.scale if self.viewport is not None else 1.0

    @property
    def topology(self) -> ConnectionTopology:
        connections = tuple(self.source.get_connections())
        if self._topology is None or self._topology.signature != connections:
            self.refresh_topology()
        return self._topology

    def refresh_topology(self) -> ConnectionTopology:
        """Rebuild sibling and adjacency data from the current connection list."""
        self._topology = ConnectionTopology(self.source.get_connections())
        return self._topology

    def _group(self, connection: Connection) -> GroupInfo:
        topology = self.topology
        if connection.id not in topology:
            topology = self.refresh_topology()
        info = topology.group(connection.id)
        if info is None:
            return GroupInfo(connection.id, group_key(connection), 0, 1, connection.id)
        return info

    def _resolve_node(self, node_id: str) -> tuple[NodeBox, bool]:
        """Current geometry of a node with any drag override applied.

        Returns the node and whether it came from last-known geometry
        because the source no longer has it.

        Raises:
            UnknownReferenceError: If the node was never seen
        """
        node = self.source.get_node(node_id)
        if node is not None:
            self._last_known[node_id] = node
            return self.overrides.apply(node), False
        node = self._last_known.get(node_id)
        if node is None:
            raise UnknownReferenceError(node_id)
        return self.overrides.apply(node), True

    # ------------------------------------------------------------------
    # Path computation
    # ------------------------------------------------------------------

    def _cache_key(
        self,
        connection: Connection,
        mode: RoutingMode,
        level: RenderLevel,
        nodes: tuple[NodeBox, NodeBox],
        group: GroupInfo,
        config: RoutingConfig,
    ) -> str:
        parts = [mode.value, level.value]
        for node, port_id in zip(nodes, (connection.source_port_id, connection.target_port_id)):
            port = node.port(port_id)
            port_part = (
                f"{port.id}/{port_side(port).value}/{port.index}/{port.total_siblings}"
                if port is not None
                else f"{port_id}/?"
            )
            parts.append(f"{node.id}@{node.geometry_key()}#{port_part}")
        parts.append(f"{group.index}/{group.total}")
        parts.append(config.geometry_signature())
        if mode == RoutingMode.WORKFLOW and config.avoid_obstacles:
            parts.append(f"obstacles:{self._obstacle_revision}")
        return "|".join(parts)

    def _route(
        self,
        connection: Connection,
        mode: RoutingMode,
        config: RoutingConfig,
        source_node: NodeBox,
        target_node: NodeBox,
        group: GroupInfo,
        stale: bool,
    ) -> RoutedPath:
        source_port = source_node.port(connection.source_port_id)
        target_port = target_node.port(connection.target_port_id)

        try:
            source = (
                resolve_port_position(source_node, source_port, mode)
                if source_port is not None
                else source_node.center
            )
            target = (
                resolve_port_position(target_node, target_port, mode)
                if target_port is not None
                else target_node.center
            )
        except DegenerateInputError as exc:
            logger.debug("Connection %s: %s, drawing straight", connection.id, exc)
            return straight_path(source_node.center, target_node.center)

        if stale or source_port is None or target_port is None:
            logger.debug("Connection %s has unresolved endpoints, drawing straight", connection.id)
            return straight_path(source, target)

        request = RouteRequest(
            source=source,
            target=target,
            source_side=port_side(source_port),
            target_side=port_side(target_port),
            source_node=source_node,
            target_node=target_node,
            sibling_offset=connection_offset(group.index, group.total, config.connection_spacing),
            obstacles=self.index if config.avoid_obstacles else None,
            exclude=connection.node_ids,
        )
        return generate_path(request, mode, config)

    def compute_path(
        self,
        connection: Connection,
        mode: RoutingMode | None = None,
        config: RoutingConfig | None = None,
    ) -> PathResult:
        """Serialized path for one connection, from cache when possible.

        Connections touching a dragged node bypass the cache in both
        directions, so drag ticks never read or store stale entries.

        Args:
            connection: Connection to route
            mode: Routing mode, defaults to ``connection.mode``
            config: Per-call configuration, defaults to the engine's

        Returns:
            Path string, cache hit flag, render level, degraded flag and
            label anchor

        Raises:
            UnknownReferenceError: If an endpoint node has never been seen
        """
        started = time.perf_counter()
        try:
            return self._compute(connection, mode or connection.mode, config or self.config)
        finally:
            self._last_compute_ms = (time.perf_counter() - started) * 1000

    def _compute(
        self,
        connection: Connection,
        mode: RoutingMode,
        config: RoutingConfig,
    ) -> PathResult:
        source_node, source_stale = self._resolve_node(connection.source_node_id)
        target_node, target_stale = self._resolve_node(connection.target_node_id)
        stale = source_stale or target_stale
        level = self.culler.calculate_level_of_detail(
            source_node.center, target_node.center, self.zoom
        )
        group = self._group(connection)
        cacheable = not stale and not any(
            self.overrides.is_dragging(node_id) for node_id in connection.node_ids
        )

        key = self._cache_key(connection, mode, level, (source_node, target_node), group, config)
        if cacheable:
            entry = self.cache.get(key)
            if entry is not None:
                return PathResult(
                    connection_id=connection.id,
                    path_string=entry.path_data,
                    cache_hit=True,
                    render_level=entry.render_level,
                    degraded=entry.degraded,
                    label_anchor=entry.label_anchor,
                )

        path = self._route(connection, mode, config, source_node, target_node, group, stale)
        path = simplify_for_level(path, level, config.simplify_tolerance)
        path_data = path.d
        anchor = label_anchor(path)
        if cacheable:
            self.cache.put(key, path_data, level, connection.node_ids, anchor, path.degraded)
        return PathResult(
            connection_id=connection.id,
            path_string=path_data,
            cache_hit=False,
            render_level=level,
            degraded=path.degraded,
            label_anchor=anchor,
        )

    def compute_paths(
        self,
        connections: Iterable[Connection] | None = None,
        mode: RoutingMode | None = None,
    ) -> dict[str, PathResult]:
        """Route a batch; connections with unknown nodes are logged and skipped."""
        self.refresh_topology()
        if connections is None:
            connections = self.source.get_connections()
        results = {}
        for conn in connections:
            try:
                results[conn.id] = self.compute_path(conn, mode)
            except UnknownReferenceError as exc:
                logger.warning("Skipping connection %s: %s", conn.id, exc)
        return results

    # ------------------------------------------------------------------
    # Visibility and bundling
    # ------------------------------------------------------------------

    def set_viewport(self, viewport: ViewportBounds) -> None:
        self.viewport = viewport

    def get_visible_connections(
        self,
        connections: Iterable[Connection] | None = None,
        viewport: ViewportBounds | None = None,
        zoom: float | None = None,
    ) -> list[str]:
        """Ids of connections worth routing for the viewport.

        The obstacle index answers node visibility on large diagrams, as
        long as no drag is moving nodes away from their indexed position.
        """
        viewport = viewport or self.viewport
        if viewport is None:
            raise ValueError("No viewport given and none set on the engine")
        connections = list(self.source.get_connections() if connections is None else connections)

        nodes: dict[str, NodeBox] = {}
        for conn in connections:
            for node_id in conn.node_ids:
                if node_id in nodes:
                    continue
                try:
                    nodes[node_id] = self._resolve_node(node_id)[0]
                except UnknownReferenceError:
                    continue

        use_index = len(self.index) >= self.config.spatial_query_threshold and not len(
            self.overrides
        )
        visible = self.culler.visible_connections(
            connections, nodes, viewport, zoom, self.index if use_index else None
        )
        self._visible_count = len(visible)
        return visible

    def plan_bundles(self, connection_ids: Iterable[str] | None = None) -> dict[str, BundleDecision]:
        """Bundle decisions for the given ids (default: every connection)."""
        connections = list(self.source.get_connections())
        if connection_ids is not None:
            wanted = set(connection_ids)
            connections = [c for c in connections if c.id in wanted]

        levels = {}
        for conn in connections:
            try:
                source_node, _ = self._resolve_node(conn.source_node_id)
                target_node, _ = self._resolve_node(conn.target_node_id)
            except UnknownReferenceError as exc:
                logger.warning("Skipping connection %s: %s", conn.id, exc)
                continue
            levels[conn.id] = self.culler.calculate_level_of_detail(
                source_node.center, target_node.center, self.zoom
            )
        return grouping.plan_bundles(
            [c for c in connections if c.id in levels],
            levels,
            threshold=self.config.bundle_threshold,
        )

    # ------------------------------------------------------------------
    # Invalidation and dragging
    # ------------------------------------------------------------------

    def rebuild_obstacles(self) -> None:
        """Re-index every node from the source."""
        nodes = list(self.source.get_nodes())
        self.index.rebuild(nodes)
        remembered = {
            node_id: node
            for node_id, node in self._last_known.items()
            if self.overrides.is_dragging(node_id)
        }
        self._last_known = {**remembered, **{node.id: node for node in nodes}}
        self._obstacle_revision += 1

    def invalidate_node(self, node_id: str) -> int:
        """Forget cached paths through a node and re-index it.

        Returns the number of cache entries dropped.
        """
        removed = self.cache.invalidate(node_id)
        node = self.source.get_node(node_id)
        if node is None:
            self.index.remove(node_id)
            if not self.overrides.is_dragging(node_id):
                self._last_known.pop(node_id, None)
        else:
            self.index.insert([node])
            self._last_known[node_id] = node
        self._obstacle_revision += 1
        return removed

    def begin_drag(self, node_id: str) -> None:
        node = self.source.get_node(node_id)
        if node is not None:
            self._last_known[node_id] = node
        self.overrides.begin(node_id)

    def drag_to(self, node_id: str, x: float, y: float) -> None:
        """Move a dragged node without touching the cache."""
        self.overrides.update(node_id, x, y)

    def end_drag(self, node_id: str) -> None:
        """Finish a drag; the host has committed the final position by now."""
        self.overrides.end(node_id)
        self.invalidate_node(node_id)

    # ------------------------------------------------------------------
    # Scheduled updates
    # ------------------------------------------------------------------

    def request_path(
        self,
        connection: Connection,
        on_ready: Callable[[PathResult], None],
    ) -> None:
        """Queue a recomputation; ``on_ready`` gets the result on a later frame."""

        def work() -> None:
            try:
                result = self.compute_path(connection)
            except UnknownReferenceError as exc:
                logger.warning("Skipping connection %s: %s", connection.id, exc)
                return
            on_ready(result)

        self.scheduler.enqueue(connection.id, work)

    def refresh_node(self, node_id: str, on_ready: Callable[[PathResult], None]) -> int:
        """Invalidate a node and queue every connection touching it.

        Returns the number of connections queued.
        """
        self.invalidate_node(node_id)
        touching = self.topology.connections_touching(node_id)
        for conn in touching:
            self.request_path(conn, on_ready)
        return len(touching)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def perform_maintenance(self) -> int:
        """Drop expired cache entries. Returns how many were purged."""
        purged = self.cache.purge_expired()
        if purged:
            logger.info("Purged %d expired path cache entries", purged)
        return purged

    def get_metrics(self) -> EngineMetrics:
        return EngineMetrics(
            visible_count=self._visible_count,
            cache_size=len(self.cache),
            cache_hit_rate=self.cache.hit_rate,
            last_compute_duration_ms=self._last_compute_ms,
            pending_updates=self.scheduler.pending_count,
            obstacle_count=len(self.index),
            extra={
                "cache_hits": self.cache.hits,
                "cache_misses": self.cache.misses,
                "cache_evictions": self.cache.evictions,
                "scheduler_processed": self.scheduler.processed_count,
                "scheduler_failed": self.scheduler.failed_count,
            },
        )
