"""Vector math, intersection tests and port position resolution.

Everything here is a pure function on ``(x, y)`` tuples and ``(min_x, min_y,
max_x, max_y)`` rectangles.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from .exceptions import DegenerateInputError, UnknownReferenceError
from .models import NodeShape, NodeVariant, PortKind, RoutingMode, Side

if TYPE_CHECKING:
    from .models import NodeBox, Point, Port, Rect

EPSILON = 1e-9

COMPACT_SCALE = 0.8


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def add(a: Point, b: Point) -> Point:
    return (a[0] + b[0], a[1] + b[1])


def sub(a: Point, b: Point) -> Point:
    return (a[0] - b[0], a[1] - b[1])


def scale(v: Point, factor: float) -> Point:
    return (v[0] * factor, v[1] * factor)


def length(v: Point) -> float:
    return math.hypot(v[0], v[1])


def distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) / 2, (a[1] + b[1]) / 2)


def is_finite_point(p: Point) -> bool:
    return math.isfinite(p[0]) and math.isfinite(p[1])


def normalize(v: Point) -> Point:
    """Unit vector in the direction of ``v``.

    Raises:
        DegenerateInputError: If ``v`` is zero-length or not finite
    """
    if not is_finite_point(v):
        raise DegenerateInputError(f"Cannot normalize non-finite vector {v}")
    n = length(v)
    if n < EPSILON:
        raise DegenerateInputError("Cannot normalize a zero-length vector")
    return (v[0] / n, v[1] / n)


def rotate(v: Point, angle: float) -> Point:
    """Rotate ``v`` counter-clockwise by ``angle`` radians."""
    c, s = math.cos(angle), math.sin(angle)
    return (v[0] * c - v[1] * s, v[0] * s + v[1] * c)


def perpendicular(a: Point, b: Point) -> Point:
    """Unit normal of the segment a->b (rotated +90 degrees)."""
    dx, dy = normalize(sub(b, a))
    return (-dy, dx)


def perpendicular_distance(point: Point, line_start: Point, line_end: Point) -> float:
    """Distance from point to the segment line_start->line_end."""
    px, py = point
    x1, y1 = line_start
    x2, y2 = line_end

    dx = x2 - x1
    dy = y2 - y1

    if dx == 0 and dy == 0:
        return math.sqrt((px - x1) ** 2 + (py - y1) ** 2)

    t = max(0, min(1, ((px - x1) * dx + (py - y1) * dy) / (dx * dx + dy * dy)))

    proj_x = x1 + t * dx
    proj_y = y1 + t * dy

    return math.sqrt((px - proj_x) ** 2 + (py - proj_y) ** 2)


# ---------------------------------------------------------------------------
# Rectangles and intersections
# ---------------------------------------------------------------------------


def point_in_rect(p: Point, rect: Rect, strict: bool = False) -> bool:
    """Whether ``p`` lies in ``rect``; ``strict`` excludes the border."""
    x1, y1, x2, y2 = rect
    if strict:
        return x1 < p[0] < x2 and y1 < p[1] < y2
    return x1 <= p[0] <= x2 and y1 <= p[1] <= y2


def expand_rect(rect: Rect, margin: float) -> Rect:
    x1, y1, x2, y2 = rect
    return (x1 - margin, y1 - margin, x2 + margin, y2 + margin)


def rects_overlap(a: Rect, b: Rect) -> bool:
    """Inclusive overlap test (touching rectangles overlap)."""
    return not (a[2] < b[0] or a[0] > b[2] or a[3] < b[1] or a[1] > b[3])


def segment_bounds(a: Point, b: Point, margin: float = 0.0) -> Rect:
    return (
        min(a[0], b[0]) - margin,
        min(a[1], b[1]) - margin,
        max(a[0], b[0]) + margin,
        max(a[1], b[1]) + margin,
    )


def _orientation(p: Point, q: Point, r: Point) -> float:
    return (q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0])


def _on_segment(p: Point, q: Point, r: Point) -> bool:
    return (
        min(p[0], r[0]) - EPSILON <= q[0] <= max(p[0], r[0]) + EPSILON
        and min(p[1], r[1]) - EPSILON <= q[1] <= max(p[1], r[1]) + EPSILON
    )


def segments_intersect(p1: Point, p2: Point, p3: Point, p4: Point) -> bool:
    """Whether segment p1-p2 touches segment p3-p4 (collinear overlap included)."""
    d1 = _orientation(p3, p4, p1)
    d2 = _orientation(p3, p4, p2)
    d3 = _orientation(p1, p2, p3)
    d4 = _orientation(p1, p2, p4)

    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True

    if abs(d1) < EPSILON and _on_segment(p3, p1, p4):
        return True
    if abs(d2) < EPSILON and _on_segment(p3, p2, p4):
        return True
    if abs(d3) < EPSILON and _on_segment(p1, p3, p2):
        return True
    if abs(d4) < EPSILON and _on_segment(p1, p4, p2):
        return True
    return False


def segment_intersects_rect(a: Point, b: Point, rect: Rect) -> bool:
    """Liang-Barsky clip test: does segment a-b touch ``rect``?"""
    x1, y1, x2, y2 = rect
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    t0, t1 = 0.0, 1.0

    for p, q in (
        (-dx, a[0] - x1),
        (dx, x2 - a[0]),
        (-dy, a[1] - y1),
        (dy, y2 - a[1]),
    ):
        if abs(p) < EPSILON:
            if q < 0:
                return False
            continue
        t = q / p
        if p < 0:
            if t > t1:
                return False
            t0 = max(t0, t)
        else:
            if t < t0:
                return False
            t1 = min(t1, t)
    return t0 <= t1


def ray_clearance(origin: Point, direction: Point, rect: Rect) -> float:
    """Distance along unit ``direction`` from ``origin`` until past ``rect``.

    Slab test. Returns 0 when the ray never enters the rectangle.
    """
    t_near, t_far = -math.inf, math.inf
    for o, d, lo, hi in (
        (origin[0], direction[0], rect[0], rect[2]),
        (origin[1], direction[1], rect[1], rect[3]),
    ):
        if abs(d) < EPSILON:
            if o < lo or o > hi:
                return 0.0
            continue
        t1 = (lo - o) / d
        t2 = (hi - o) / d
        if t1 > t2:
            t1, t2 = t2, t1
        t_near = max(t_near, t1)
        t_far = min(t_far, t2)
    if t_near > t_far or t_far < 0 or math.isinf(t_far):
        return 0.0
    return t_far


# ---------------------------------------------------------------------------
# Port resolution
# ---------------------------------------------------------------------------


def usable_width(width: float) -> float:
    """Span available to bottom/top ports: 80% of the width or width - 70."""
    return max(0.0, min(width * 0.8, width - 70))


def port_offset(index: int, total: int, usable: float) -> float:
    """Offset from the side's centre for port ``index`` of ``total``.

    - 1 port: centre
    - 2 ports: thirds of the usable span
    - 3 ports: -half, centre, +half
    - 4+ ports: evenly across the usable span
    """
    if total <= 1:
        return 0.0
    if total == 2:
        spacing = usable / 3
        return (-spacing, spacing)[index] if 0 <= index < 2 else 0.0
    if total == 3:
        half = usable / 2
        return (-half, 0.0, half)[index] if 0 <= index < 3 else 0.0
    spacing = usable / (total - 1)
    return -usable / 2 + spacing * index


def variant_scale(variant: NodeVariant) -> float:
    return COMPACT_SCALE if variant == NodeVariant.COMPACT else 1.0


def port_side(port: Port) -> Side:
    """Boundary side a port sits on, from its kind (or explicit side)."""
    if port.kind == PortKind.SIDE:
        return port.side or Side.RIGHT
    if port.side is not None:
        return port.side
    if port.kind == PortKind.INPUT:
        return Side.LEFT
    if port.kind == PortKind.BOTTOM:
        return Side.BOTTOM
    return Side.RIGHT


def _project_to_outline(node: NodeBox, side: Side, along: float) -> Point:
    """Point on the node outline at offset ``along`` from the side's midpoint."""
    cx, cy = node.center
    half_w = node.width / 2
    half_h = node.height / 2

    if side.is_horizontal:
        y = cy + along
        rel = min(1.0, abs(along) / half_h) if half_h > 0 else 1.0
        if node.shape == NodeShape.DIAMOND:
            reach = half_w * (1 - rel)
        elif node.shape == NodeShape.CIRCLE:
            reach = half_w * math.sqrt(max(0.0, 1 - rel * rel))
        else:
            reach = half_w
        x = cx + reach if side == Side.RIGHT else cx - reach
        return (x, y)

    x = cx + along
    rel = min(1.0, abs(along) / half_w) if half_w > 0 else 1.0
    if node.shape == NodeShape.DIAMOND:
        reach = half_h * (1 - rel)
    elif node.shape == NodeShape.CIRCLE:
        reach = half_h * math.sqrt(max(0.0, 1 - rel * rel))
    else:
        reach = half_h
    y = cy + reach if side == Side.BOTTOM else cy - reach
    return (x, y)


def side_port_position(
    node: NodeBox,
    side: Side,
    index: int = 0,
    total: int = 1,
) -> Point:
    """Position of the ``index``-th of ``total`` ports on one side of a node."""
    factor = variant_scale(node.variant)
    if side.is_horizontal:
        # Evenly down the height, centred
        spacing = node.height / (total + 1)
        along = -node.height / 2 + spacing * (index + 1)
    else:
        along = port_offset(index, total, usable_width(node.width))
    return _project_to_outline(node, side, along * factor)


def resolve_side_anchor(node: NodeBox, side: Side) -> Point:
    """Midpoint of one side of the node outline."""
    return side_port_position(node, side)


def resolve_port_position(
    node: NodeBox | None,
    port: Port | None,
    mode: RoutingMode = RoutingMode.WORKFLOW,
) -> Point:
    """Resolve a port to diagram coordinates.

    The result is deterministic in (node geometry, port kind/side, index,
    total siblings). ``mode`` is accepted for the strategy table's sake;
    both modes place ports on the same outline.

    Args:
        node: Owning node snapshot
        port: Port to resolve
        mode: Routing mode of the connection

    Returns:
        (x, y) of the port on the node boundary

    Raises:
        UnknownReferenceError: If the node or port is missing, or the port
            belongs to another node
    """
    if node is None:
        raise UnknownReferenceError(port.owner_node_id if port else None)
    if port is None:
        raise UnknownReferenceError(node.id, "<missing>")
    if port.owner_node_id != node.id:
        raise UnknownReferenceError(node.id, port.id)
    if not is_finite_point((node.x, node.y)):
        raise DegenerateInputError(f"Node '{node.id}' has non-finite position")

    side = port_side(port)
    total = max(1, port.total_siblings)
    index = min(max(0, port.index), total - 1)
    return side_port_position(node, side, index, total)


def detect_side(node: NodeBox, point: Point, eps: float = 0.5) -> Side:
    """Which side of ``node`` a boundary point is on (nearest side otherwise)."""
    if abs(point[0] - node.right) <= eps:
        return Side.RIGHT
    if abs(point[0] - node.left) <= eps:
        return Side.LEFT
    if abs(point[1] - node.top) <= eps:
        return Side.TOP
    if abs(point[1] - node.bottom) <= eps:
        return Side.BOTTOM

    dx_left = abs(point[0] - node.left)
    dx_right = abs(point[0] - node.right)
    dy_top = abs(point[1] - node.top)
    dy_bottom = abs(point[1] - node.bottom)
    if min(dx_left, dx_right) < min(dy_top, dy_bottom):
        return Side.LEFT if dx_left < dx_right else Side.RIGHT
    return Side.TOP if dy_top < dy_bottom else Side.BOTTOM
