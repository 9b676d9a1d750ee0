"""Connection grouping, bundling decisions and topology queries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Mapping

import networkx as nx

from .models import RenderLevel, RoutingMode

if TYPE_CHECKING:
    from .models import Connection


def group_key(connection: Connection) -> str:
    """Identity shared by connections between the same endpoints.

    Workflow connections are directional (``"a:out->b:in"``); architecture
    connections are not, so their endpoints are sorted and joined with
    ``<->``.
    """
    source = f"{connection.source_node_id}:{connection.source_port_id}"
    target = f"{connection.target_node_id}:{connection.target_port_id}"
    if connection.mode == RoutingMode.ARCHITECTURE:
        first, second = sorted((source, target))
        return f"{first}<->{second}"
    return f"{source}->{target}"


@dataclass(frozen=True)
class GroupInfo:
    """Where a connection sits among its siblings."""

    connection_id: str
    group_key: str
    index: int
    total: int
    primary_id: str

    @property
    def is_primary(self) -> bool:
        return self.connection_id == self.primary_id


@dataclass(frozen=True)
class BundleDecision:
    """How the paint layer should treat one connection."""

    connection_id: str
    group_key: str
    is_primary: bool
    hidden: bool
    count: int  # Number shown on the primary's label; 1 when not bundled


def analyze_groups(connections: Iterable[Connection]) -> dict[str, GroupInfo]:
    """Sibling index and total for every connection.

    Siblings keep their input order, so the first one seen is the primary.
    """
    groups: dict[str, list[Connection]] = {}
    for conn in connections:
        groups.setdefault(group_key(conn), []).append(conn)

    result = {}
    for key, members in groups.items():
        primary_id = members[0].id
        for i, conn in enumerate(members):
            result[conn.id] = GroupInfo(conn.id, key, i, len(members), primary_id)
    return result


def should_bundle(
    mode: RoutingMode,
    visible_count: int,
    level: RenderLevel,
    threshold: int = 100,
) -> bool:
    """Architecture diagrams always collapse siblings; workflows only when busy and zoomed out."""
    if mode == RoutingMode.ARCHITECTURE:
        return True
    return visible_count > threshold and level != RenderLevel.HIGH


def plan_bundles(
    connections: Iterable[Connection],
    levels: Mapping[str, RenderLevel],
    threshold: int = 100,
    mode: RoutingMode | None = None,
) -> dict[str, BundleDecision]:
    """Decide which siblings to collapse into their primary.

    A group is bundled or not as a whole, judged by its primary's mode and
    render level. In a bundled group the primary carries the sibling count
    and every other member is hidden.

    Args:
        connections: The working set (usually the visible connections)
        levels: Render level per connection id; missing ids count as HIGH
        threshold: Connection count above which workflow bundling kicks in
        mode: Overrides every connection's own mode when given

    Returns:
        One decision per connection id
    """
    connections = list(connections)
    groups = analyze_groups(connections)
    by_id = {conn.id: conn for conn in connections}
    visible_count = len(connections)

    decisions = {}
    for conn in connections:
        info = groups[conn.id]
        primary = by_id[info.primary_id]
        bundled = info.total > 1 and should_bundle(
            mode or primary.mode,
            visible_count,
            levels.get(primary.id, RenderLevel.HIGH),
            threshold,
        )
        decisions[conn.id] = BundleDecision(
            connection_id=conn.id,
            group_key=info.group_key,
            is_primary=info.is_primary,
            hidden=bundled and not info.is_primary,
            count=info.total if bundled and info.is_primary else 1,
        )
    return decisions


class ConnectionTopology:
    """Node/connection adjacency over a networkx multigraph.

    Each connection is an edge keyed by its id, so parallel connections
    and self-loops are kept apart.
    """

    def __init__(self, connections: Iterable[Connection]) -> None:
        # Connections are frozen dataclasses, so the tuple compares by content
        self.signature: tuple[Connection, ...] = tuple(connections)
        self.graph = nx.MultiDiGraph()
        self._connections: dict[str, Connection] = {}
        for conn in self.signature:
            self.graph.add_edge(conn.source_node_id, conn.target_node_id, key=conn.id)
            self._connections[conn.id] = conn
        self._order = {conn_id: i for i, conn_id in enumerate(self._connections)}
        self._groups = analyze_groups(self._connections.values())
        self._members: dict[str, list[str]] = {}
        for conn_id, info in self._groups.items():
            self._members.setdefault(info.group_key, []).append(conn_id)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def connection(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def group(self, connection_id: str) -> GroupInfo | None:
        return self._groups.get(connection_id)

    def connections_touching(self, node_id: str) -> list[Connection]:
        """Every connection with ``node_id`` at either end, in input order."""
        if node_id not in self.graph:
            return []
        ids = {key for _, _, key in self.graph.out_edges(node_id, keys=True)}
        ids.update(key for _, _, key in self.graph.in_edges(node_id, keys=True))
        return [self._connections[i] for i in sorted(ids, key=self._order.__getitem__)]

    def siblings(self, connection_id: str) -> list[Connection]:
        """Connections sharing a group key with ``connection_id`` (itself included)."""
        info = self._groups.get(connection_id)
        if info is None:
            return []
        return [self._connections[i] for i in self._members[info.group_key]]

    def degree(self, node_id: str) -> int:
        if node_id not in self.graph:
            return 0
        return self.graph.degree(node_id)

    def neighbors(self, node_id: str) -> set[str]:
        if node_id not in self.graph:
            return set()
        return set(nx.all_neighbors(self.graph, node_id))
