"""routeplot - Connection path routing and rendering-performance engine.

Example usage:
    from routeplot import (
        Connection, DiagramSnapshot, NodeBox, Port, PortKind, RoutingEngine, ViewportBounds,
    )

    api = NodeBox("api", 0, 0, ports=(Port("out", "api", PortKind.OUTPUT),))
    db = NodeBox("db", 400, 120, ports=(Port("in", "db", PortKind.INPUT),))
    link = Connection("c1", "api", "out", "db", "in")

    snapshot = DiagramSnapshot([api, db], [link])
    engine = RoutingEngine(snapshot)
    engine.set_viewport(ViewportBounds(0, 0, 1200, 800))
    for conn_id in engine.get_visible_connections():
        print(engine.compute_path(snapshot.connection(conn_id)).path_string)
"""

from .cache import (
    DragOverrides,
    PathCache,
    PathCacheEntry,
)
from .config import (
    DEFAULT_CONFIG,
    RoutingConfig,
)
from .culling import (
    ViewportCuller,
)
from .engine import (
    DiagramSnapshot,
    DiagramSource,
    RoutingEngine,
)
from .exceptions import (
    DegenerateInputError,
    GeometryError,
    UnknownReferenceError,
)
from .geometry import (
    resolve_port_position,
    resolve_side_anchor,
)
from .grouping import (
    BundleDecision,
    ConnectionTopology,
    GroupInfo,
    analyze_groups,
    group_key,
    plan_bundles,
)
from .models import (
    Connection,
    EngineMetrics,
    NodeBox,
    NodeShape,
    NodeVariant,
    PathCommand,
    PathResult,
    Port,
    PortKind,
    RenderLevel,
    RoutedPath,
    RoutingMode,
    Side,
    ViewportBounds,
)
from .paths import (
    RouteRequest,
    avoidance_path,
    bezier_path,
    generate_path,
    orthogonal_path,
    serialize_commands,
    straight_path,
    u_shape_path,
)
from .preview import (
    DEFAULT_THEME,
    PreviewRenderer,
    Theme,
    render_to_svg,
)
from .scheduler import (
    FrameScheduler,
    ManualFrameScheduler,
    UpdateScheduler,
)
from .spatial import (
    SpatialIndex,
)

__version__ = "0.1.0"

__all__ = [
    # Engine
    "RoutingEngine",
    "DiagramSource",
    "DiagramSnapshot",
    "RoutingConfig",
    "DEFAULT_CONFIG",
    # Models
    "NodeBox",
    "Port",
    "Connection",
    "ViewportBounds",
    "PathCommand",
    "RoutedPath",
    "PathResult",
    "EngineMetrics",
    "NodeShape",
    "NodeVariant",
    "PortKind",
    "Side",
    "RoutingMode",
    "RenderLevel",
    # Errors
    "GeometryError",
    "UnknownReferenceError",
    "DegenerateInputError",
    # Geometry and paths
    "resolve_port_position",
    "resolve_side_anchor",
    "RouteRequest",
    "generate_path",
    "bezier_path",
    "orthogonal_path",
    "u_shape_path",
    "avoidance_path",
    "straight_path",
    "serialize_commands",
    # Performance
    "SpatialIndex",
    "ViewportCuller",
    "PathCache",
    "PathCacheEntry",
    "DragOverrides",
    "FrameScheduler",
    "ManualFrameScheduler",
    "UpdateScheduler",
    # Grouping
    "group_key",
    "analyze_groups",
    "plan_bundles",
    "GroupInfo",
    "BundleDecision",
    "ConnectionTopology",
    # Rendering
    "render_to_svg",
    "PreviewRenderer",
    "Theme",
    "DEFAULT_THEME",
    # Version
    "__version__",
]
