"""Data models for routeplot connection routing."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Literal

Point = tuple[float, float]
Rect = tuple[float, float, float, float]  # (min_x, min_y, max_x, max_y)


class NodeShape(Enum):
    """Outline of a node box."""

    RECTANGLE = "rectangle"
    DIAMOND = "diamond"
    CIRCLE = "circle"


class NodeVariant(Enum):
    """Rendering variant of a node; compact nodes shrink port offsets."""

    STANDARD = "standard"
    COMPACT = "compact"


class PortKind(Enum):
    """Role of a port on its node."""

    INPUT = "input"
    OUTPUT = "output"
    BOTTOM = "bottom"
    SIDE = "side"


class Side(Enum):
    """Which side of a node box a port sits on."""

    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"
    LEFT = "left"

    @property
    def normal(self) -> Point:
        """Outward unit normal of this side (y grows downwards)."""
        return _SIDE_NORMALS[self]

    @property
    def is_horizontal(self) -> bool:
        """True for LEFT/RIGHT, i.e. leads leave the node horizontally."""
        return self in (Side.LEFT, Side.RIGHT)


_SIDE_NORMALS: dict[Side, Point] = {
    Side.TOP: (0.0, -1.0),
    Side.RIGHT: (1.0, 0.0),
    Side.BOTTOM: (0.0, 1.0),
    Side.LEFT: (-1.0, 0.0),
}


class RoutingMode(Enum):
    """Diagram mode; selects the path strategy table."""

    WORKFLOW = "workflow"
    ARCHITECTURE = "architecture"


class RenderLevel(Enum):
    """Geometric detail tier chosen from zoom and connection distance."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Port:
    """A connection point on a node.

    The position is never stored; it is derived from the owning NodeBox,
    the port's kind/side and its index among same-side siblings.
    """

    id: str
    owner_node_id: str
    kind: PortKind = PortKind.OUTPUT
    data_type: str = "any"
    index: int = 0
    total_siblings: int = 1
    side: Side | None = None  # Required for PortKind.SIDE only


@dataclass(frozen=True)
class NodeBox:
    """Snapshot of a node's geometry.

    ``x``/``y`` is the top-left corner. The core reads these per call and
    never mutates them.
    """

    id: str
    x: float
    y: float
    width: float = 200
    height: float = 80
    shape: NodeShape = NodeShape.RECTANGLE
    variant: NodeVariant = NodeVariant.STANDARD
    ports: tuple[Port, ...] = ()

    @property
    def left(self) -> float:
        return self.x

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def bounds(self) -> Rect:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def port(self, port_id: str) -> Port | None:
        """Look up one of this node's ports by id."""
        for port in self.ports:
            if port.id == port_id:
                return port
        return None

    def moved_to(self, x: float, y: float) -> NodeBox:
        """Copy of this box at a new top-left position."""
        return replace(self, x=x, y=y)

    def geometry_key(self) -> str:
        """Every field of the box that affects routed geometry."""
        return (
            f"{self.x:g},{self.y:g},{self.width:g},{self.height:g},"
            f"{self.shape.value},{self.variant.value}"
        )


@dataclass(frozen=True)
class Connection:
    """An edge between two ports."""

    id: str
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str
    mode: RoutingMode = RoutingMode.WORKFLOW

    @property
    def node_ids(self) -> tuple[str, str]:
        return (self.source_node_id, self.target_node_id)

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_node_id, self.target_node_id)


@dataclass(frozen=True)
class ViewportBounds:
    """Visible region in diagram coordinates plus the current zoom."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float
    scale: float = 1.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def rect(self) -> Rect:
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def expanded(self, margin: float) -> ViewportBounds:
        """Viewport grown by ``margin`` on every side."""
        return ViewportBounds(
            self.min_x - margin,
            self.min_y - margin,
            self.max_x + margin,
            self.max_y + margin,
            self.scale,
        )


CommandType = Literal["M", "L", "C"]


@dataclass(frozen=True)
class PathCommand:
    """One SVG path command: move, line or cubic curve."""

    type: CommandType
    points: tuple[Point, ...]

    @property
    def end(self) -> Point:
        return self.points[-1]


@dataclass
class RoutedPath:
    """A computed path between two connection points."""

    commands: list[PathCommand]
    # Routing polyline (port, leads, bends, end) before corner rounding
    waypoints: list[Point]
    source_side: Side | None = None
    target_side: Side | None = None
    strategy: str = "straight"
    degraded: bool = False

    @property
    def d(self) -> str:
        """Serialized SVG path data."""
        from .paths import serialize_commands

        return serialize_commands(self.commands)

    @property
    def start(self) -> Point:
        return self.commands[0].points[0]

    @property
    def end(self) -> Point:
        return self.commands[-1].end

    def all_points(self) -> list[Point]:
        """Every coordinate in the path, control points included."""
        return [p for cmd in self.commands for p in cmd.points]


@dataclass(frozen=True)
class PathResult:
    """What ``RoutingEngine.compute_path`` hands to the paint layer."""

    connection_id: str
    path_string: str
    cache_hit: bool
    render_level: RenderLevel
    degraded: bool = False
    label_anchor: Point | None = None


@dataclass
class EngineMetrics:
    """Snapshot of the engine's rendering-performance counters."""

    visible_count: int = 0
    cache_size: int = 0
    cache_hit_rate: float = 0.0
    last_compute_duration_ms: float = 0.0
    pending_updates: int = 0
    obstacle_count: int = 0
    extra: dict[str, float] = field(default_factory=dict)
