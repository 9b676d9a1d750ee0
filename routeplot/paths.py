"""Path generators for diagram connections.

Every generator returns a :class:`~routeplot.models.RoutedPath` whose first
command is a move to the source port. Curved routes end ``arrow_offset``
short of the target along the source-to-target direction; orthogonal and
U-shape routes end ``arrow_trim_distance`` short of the target along their
last segment. Both leave room for an arrowhead marker.

Strategy selection is a plain table keyed by :class:`RoutingMode`:

- WORKFLOW: obstacle-avoiding curve when a straight chord hits an obstacle,
  otherwise a Bezier curve shaped by the connection flow.
- ARCHITECTURE: U-shape when the target sits too close behind the source
  port, otherwise an orthogonal route with rounded corners.

Degenerate input (zero-length vectors, non-finite coordinates) never
escapes :func:`generate_path`; it becomes a straight line flagged
``degraded``.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable, Iterable, Literal

from .config import DEFAULT_CONFIG, RoutingConfig
from .exceptions import DegenerateInputError
from .geometry import (
    EPSILON,
    add,
    distance,
    expand_rect,
    is_finite_point,
    midpoint,
    normalize,
    perpendicular,
    perpendicular_distance,
    ray_clearance,
    resolve_side_anchor,
    scale,
    sub,
)
from .models import PathCommand, RenderLevel, RoutedPath, RoutingMode, Side

if TYPE_CHECKING:
    from .models import NodeBox, Point, Rect
    from .spatial import SpatialIndex

logger = logging.getLogger(__name__)

Flow = Literal["horizontal", "vertical", "bottom-to-input"]

# Control-point distance for a cubic quarter circle
KAPPA = 0.5523

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def format_number(value: float) -> str:
    """Two decimals, trailing zeros dropped, negative zero printed as 0."""
    rounded = round(value, 2)
    if rounded == 0:
        return "0"
    return f"{rounded:.2f}".rstrip("0").rstrip(".")


def serialize_commands(commands: Iterable[PathCommand]) -> str:
    """Render commands as SVG path data, e.g. ``"M 0 0 C 120 0 173 0 293 0"``."""
    parts = []
    for cmd in commands:
        coords = " ".join(f"{format_number(x)} {format_number(y)}" for x, y in cmd.points)
        parts.append(f"{cmd.type} {coords}")
    return " ".join(parts)


def path_complexity(path_data: str) -> int:
    """Rough rendering cost of serialized path data.

    Each curve command counts double; every coordinate pair counts once.
    """
    curves = path_data.count("C")
    numbers = len(_NUMBER_RE.findall(path_data))
    return curves * 2 + numbers // 2


# ---------------------------------------------------------------------------
# Polyline helpers
# ---------------------------------------------------------------------------


def _same_direction(a: Point, b: Point, c: Point) -> bool:
    """Whether b lies on the straight run a->c (no turn, no reversal)."""
    v1 = sub(b, a)
    v2 = sub(c, b)
    cross = v1[0] * v2[1] - v1[1] * v2[0]
    dot = v1[0] * v2[0] + v1[1] * v2[1]
    return abs(cross) < EPSILON and dot > 0


def compact_polyline(points: list[Point]) -> list[Point]:
    """Drop duplicate points and interior points of straight runs."""
    result: list[Point] = []
    for p in points:
        if result and distance(result[-1], p) < EPSILON:
            continue
        if len(result) >= 2 and _same_direction(result[-2], result[-1], p):
            result[-1] = p
            continue
        result.append(p)
    return result


def trim_endpoint(points: list[Point], trim: float) -> list[Point]:
    """Pull the last point back by ``trim`` along the last segment.

    Segments shorter than ``trim`` are halved instead so the route keeps its
    final approach direction.
    """
    if len(points) < 2 or trim <= 0:
        return list(points)
    prev, end = points[-2], points[-1]
    seg = distance(prev, end)
    if seg < EPSILON:
        return list(points)
    pull = trim if seg > trim else seg / 2
    ux = (end[0] - prev[0]) / seg
    uy = (end[1] - prev[1]) / seg
    return [*points[:-1], (end[0] - ux * pull, end[1] - uy * pull)]


def rounded_commands(points: list[Point], corner_radius: float) -> list[PathCommand]:
    """Convert waypoints to a polyline with rounded corners.

    Each corner becomes a cubic quarter-circle approximation whose radius
    is limited to half of the shorter adjacent segment.

    Args:
        points: Waypoints, first is the path start
        corner_radius: Requested corner radius

    Returns:
        ``M``/``L``/``C`` commands
    """
    if not points:
        return []
    commands = [PathCommand("M", (points[0],))]
    if len(points) == 1:
        return commands

    for i in range(1, len(points) - 1):
        prev = points[i - 1]
        curr = points[i]
        next_pt = points[i + 1]

        len1 = distance(prev, curr)
        len2 = distance(curr, next_pt)
        if len1 < 0.001 or len2 < 0.001:
            commands.append(PathCommand("L", (curr,)))
            continue

        v1 = ((curr[0] - prev[0]) / len1, (curr[1] - prev[1]) / len1)
        v2 = ((next_pt[0] - curr[0]) / len2, (next_pt[1] - curr[1]) / len2)

        radius = min(corner_radius, len1 / 2, len2 / 2)
        if radius < 1:
            commands.append(PathCommand("L", (curr,)))
            continue

        arc_start = (curr[0] - v1[0] * radius, curr[1] - v1[1] * radius)
        arc_end = (curr[0] + v2[0] * radius, curr[1] + v2[1] * radius)
        c1 = (arc_start[0] + v1[0] * radius * KAPPA, arc_start[1] + v1[1] * radius * KAPPA)
        c2 = (arc_end[0] - v2[0] * radius * KAPPA, arc_end[1] - v2[1] * radius * KAPPA)

        commands.append(PathCommand("L", (arc_start,)))
        commands.append(PathCommand("C", (c1, c2, arc_end)))

    commands.append(PathCommand("L", (points[-1],)))
    return commands


def simplify_polyline(points: list[Point], tolerance: float) -> list[Point]:
    """Douglas-Peucker simplification keeping both endpoints."""
    if len(points) <= 2:
        return list(points)

    first = points[0]
    last = points[-1]

    max_dist = 0.0
    max_idx = 0
    for i in range(1, len(points) - 1):
        dist = perpendicular_distance(points[i], first, last)
        if dist > max_dist:
            max_dist = dist
            max_idx = i

    if max_dist > tolerance:
        left = simplify_polyline(points[: max_idx + 1], tolerance)
        right = simplify_polyline(points[max_idx:], tolerance)
        return left[:-1] + right
    return [first, last]


def catmull_rom_controls(
    points: list[Point],
    tension: float = 0.5,
    max_control_distance: float = 80.0,
) -> list[Point]:
    """Catmull-Rom spline through ``points`` as cubic Bezier control points.

    Args:
        points: Points the curve must pass through
        tension: Curve tension (0 = angular, 1 = very smooth)
        max_control_distance: Cap on how far a control point strays from
            its anchor

    Returns:
        ``[p0, c1, c2, p1, c1, c2, p2, ...]``
    """
    if len(points) < 2:
        return list(points)

    if len(points) == 2:
        mid = midpoint(points[0], points[1])
        return [points[0], mid, mid, points[1]]

    def constrain(ox: float, oy: float) -> Point:
        dist = math.hypot(ox, oy)
        if dist > max_control_distance:
            factor = max_control_distance / dist
            return ox * factor, oy * factor
        return ox, oy

    result = [points[0]]
    for i in range(1, len(points)):
        p0 = points[max(0, i - 2)]
        p1 = points[i - 1]
        p2 = points[i]
        p3 = points[min(len(points) - 1, i + 1)]

        o1 = constrain((p2[0] - p0[0]) * tension / 3, (p2[1] - p0[1]) * tension / 3)
        o2 = constrain((p3[0] - p1[0]) * tension / 3, (p3[1] - p1[1]) * tension / 3)

        result.extend([add(p1, o1), sub(p2, o2), p2])
    return result


def flatten_commands(commands: list[PathCommand], samples_per_curve: int = 10) -> list[Point]:
    """Approximate a path by a polyline, sampling each cubic curve."""
    points: list[Point] = []
    current: Point | None = None
    for cmd in commands:
        if cmd.type == "C" and current is not None:
            p0 = current
            c1, c2, p3 = cmd.points
            for i in range(1, samples_per_curve):
                t = i / samples_per_curve
                mt = 1 - t
                x = mt**3 * p0[0] + 3 * mt**2 * t * c1[0] + 3 * mt * t**2 * c2[0] + t**3 * p3[0]
                y = mt**3 * p0[1] + 3 * mt**2 * t * c1[1] + 3 * mt * t**2 * c2[1] + t**3 * p3[1]
                points.append((x, y))
            points.append(p3)
        else:
            points.append(cmd.end)
        current = cmd.end
    return points


def polyline_center(points: list[Point]) -> Point:
    """Point halfway along a polyline by arc length."""
    if len(points) < 2:
        return points[0] if points else (0.0, 0.0)

    arc_lengths = [0.0]
    for i in range(1, len(points)):
        arc_lengths.append(arc_lengths[-1] + distance(points[i - 1], points[i]))

    total = arc_lengths[-1]
    if total == 0:
        return points[0]

    target = total / 2
    for i in range(1, len(arc_lengths)):
        if arc_lengths[i] >= target:
            seg_start = arc_lengths[i - 1]
            seg_len = arc_lengths[i] - seg_start
            if seg_len == 0:
                return points[i - 1]
            t = (target - seg_start) / seg_len
            return (
                points[i - 1][0] + t * (points[i][0] - points[i - 1][0]),
                points[i - 1][1] + t * (points[i][1] - points[i - 1][1]),
            )
    return points[-1]


def label_anchor(path: RoutedPath) -> Point:
    """Where a bundle count label sits: the arc-length midpoint of the path."""
    return polyline_center(flatten_commands(path.commands))


def connection_offset(index: int, total: int, spacing: float = 15.0) -> float:
    """Perpendicular spread for the ``index``-th of ``total`` sibling connections."""
    if total <= 1:
        return 0.0
    return index * spacing - spacing * (total - 1) / 2


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


def straight_path(source: Point, target: Point, degraded: bool = True) -> RoutedPath:
    """Plain line between raw endpoints; the fallback for every generator."""
    return RoutedPath(
        commands=[PathCommand("M", (source,)), PathCommand("L", (target,))],
        waypoints=[source, target],
        strategy="straight",
        degraded=degraded,
    )


def connection_flow(source_side: Side | None, target_side: Side | None) -> Flow:
    """Classify a curved connection by the sides its ports sit on."""
    if source_side is None or source_side.is_horizontal:
        return "horizontal"
    if source_side == Side.BOTTOM and (target_side is None or target_side.is_horizontal):
        return "bottom-to-input"
    return "vertical"


def bezier_path(
    source: Point,
    target: Point,
    flow: Flow = "horizontal",
    config: RoutingConfig = DEFAULT_CONFIG,
    sibling_offset: float = 0.0,
    source_side: Side | None = None,
    target_side: Side | None = None,
) -> RoutedPath:
    """Cubic Bezier between two ports.

    The control offset is ``max(|delta| / smoothing_factor, control_offset_min)``
    measured on the raw (untrimmed) endpoints: dx for horizontal flow, dy for
    bottom-to-input, and the larger of the two for vertical flow. The curve
    ends ``arrow_offset`` short of the target along the source-to-target
    direction.

    Args:
        source: Source port position
        target: Target port position
        flow: Flow classification from :func:`connection_flow`
        config: Routing configuration
        sibling_offset: Shift applied to both control points across the flow
        source_side: Side of the source port, orients the first control point
        target_side: Side of the target port, orients the second control point

    Returns:
        A single-curve path

    Raises:
        DegenerateInputError: If source and target coincide
    """
    dx = target[0] - source[0]
    dy = target[1] - source[1]
    direction = normalize((dx, dy))
    end = sub(target, scale(direction, config.arrow_offset))

    sf = config.smoothing_factor
    minimum = config.control_offset_min

    if flow == "bottom-to-input":
        cp1 = (source[0] + sibling_offset, source[1] + max(abs(dy) / sf, minimum))
        cp2 = (end[0] + sibling_offset, end[1] - max(abs(dx) / sf, 40.0))
    elif flow == "vertical":
        offset = max(max(abs(dx), abs(dy)) / sf, minimum)
        downwards = 1.0 if dy >= 0 else -1.0
        s1 = source_side.normal[1] if source_side and not source_side.is_horizontal else downwards
        s2 = -target_side.normal[1] if target_side and not target_side.is_horizontal else downwards
        cp1 = (source[0] + dx * 0.1 + sibling_offset, source[1] + s1 * offset)
        cp2 = (end[0] - dx * 0.1 + sibling_offset, end[1] - s2 * offset)
    else:
        offset = max(abs(dx) / sf, minimum)
        s1 = source_side.normal[0] if source_side and source_side.is_horizontal else 1.0
        s2 = -target_side.normal[0] if target_side and target_side.is_horizontal else 1.0
        cp1 = (source[0] + s1 * offset, source[1] + dy * 0.1 + sibling_offset)
        cp2 = (end[0] - s2 * offset, end[1] - dy * 0.1 + sibling_offset)

    return RoutedPath(
        commands=[PathCommand("M", (source,)), PathCommand("C", (cp1, cp2, end))],
        waypoints=[source, end],
        source_side=source_side,
        target_side=target_side,
        strategy="bezier",
    )


def orthogonal_path(
    source: Point,
    source_side: Side,
    target: Point,
    target_side: Side,
    config: RoutingConfig = DEFAULT_CONFIG,
) -> RoutedPath:
    """Manhattan route: leads out of both ports, then the fewest bends between.

    When both leads share an orientation the middle is a Z, split halfway
    along the leads' axis while the ports face each other and halfway
    across it when they face away. Mixed orientations get a single-corner
    L; of the two possible corners the one with fewer bends wins, then the
    one turning on the axis with greater separation. Facing ports closer
    than two lead lengths share the gap between their leads, so the route
    never doubles back on itself.
    """
    lead = config.lead_length
    if source_side.is_horizontal == target_side.is_horizontal:
        axis = 0 if source_side.is_horizontal else 1
        facing = target_side.normal[axis] == -source_side.normal[axis]
        gap = (target[axis] - source[axis]) * source_side.normal[axis]
        if facing and 0 < gap < 2 * lead:
            lead = gap / 2

    s_lead = add(source, scale(source_side.normal, lead))
    t_lead = add(target, scale(target_side.normal, lead))
    dx = t_lead[0] - s_lead[0]
    dy = t_lead[1] - s_lead[1]

    def route(middle: list[Point]) -> list[Point]:
        return compact_polyline([source, s_lead, *middle, t_lead, target])

    split_x = [(s_lead[0] + dx / 2, s_lead[1]), (s_lead[0] + dx / 2, t_lead[1])]
    split_y = [(s_lead[0], s_lead[1] + dy / 2), (t_lead[0], s_lead[1] + dy / 2)]

    if source_side.is_horizontal and target_side.is_horizontal:
        forward = dx * source_side.normal[0] > 0
        points = route(split_x if forward else split_y)
    elif not source_side.is_horizontal and not target_side.is_horizontal:
        forward = dy * source_side.normal[1] > 0
        points = route(split_y if forward else split_x)
    else:
        horizontal_first = route([(t_lead[0], s_lead[1])])
        vertical_first = route([(s_lead[0], t_lead[1])])
        if len(horizontal_first) != len(vertical_first):
            points = min(horizontal_first, vertical_first, key=len)
        else:
            points = horizontal_first if abs(dx) >= abs(dy) else vertical_first

    if len(points) < 2:
        raise DegenerateInputError("Orthogonal route collapsed to a single point")
    points = trim_endpoint(points, config.arrow_trim_distance)
    return RoutedPath(
        commands=rounded_commands(points, config.corner_radius),
        waypoints=points,
        source_side=source_side,
        target_side=target_side,
        strategy="orthogonal",
    )


def needs_u_shape(
    source: Point,
    source_side: Side,
    target_node: NodeBox,
    lead_length: float,
) -> bool:
    """Whether the target sits too close behind the source port for a direct route.

    Each side compares the distance from the port to the facing edge of
    the target against the lead length. Vertical ports need room for two
    leads, one out of each node.
    """
    if source_side == Side.RIGHT:
        return target_node.left - source[0] < lead_length
    if source_side == Side.LEFT:
        return source[0] - target_node.right < lead_length
    if source_side == Side.BOTTOM:
        return target_node.top - source[1] < 2 * lead_length
    return source[1] - target_node.bottom < 2 * lead_length


# U-shape routes are built in a frame where the exit side faces +x.
_TO_FRAME: dict[Side, Callable[[Point], Point]] = {
    Side.RIGHT: lambda p: (p[0], p[1]),
    Side.LEFT: lambda p: (-p[0], p[1]),
    Side.BOTTOM: lambda p: (p[1], p[0]),
    Side.TOP: lambda p: (-p[1], p[0]),
}

_FROM_FRAME: dict[Side, Callable[[Point], Point]] = {
    Side.RIGHT: lambda p: (p[0], p[1]),
    Side.LEFT: lambda p: (-p[0], p[1]),
    Side.BOTTOM: lambda p: (p[1], p[0]),
    Side.TOP: lambda p: (p[1], -p[0]),
}


def _rect_to_frame(rect: Rect, side: Side) -> Rect:
    a = _TO_FRAME[side]((rect[0], rect[1]))
    b = _TO_FRAME[side]((rect[2], rect[3]))
    return (min(a[0], b[0]), min(a[1], b[1]), max(a[0], b[0]), max(a[1], b[1]))


def _run_blocked(v: float, u0: float, u1: float, rect: Rect) -> bool:
    """Whether the run at height ``v`` from u0 to u1 passes through ``rect``."""
    return (
        rect[1] <= v <= rect[3]
        and max(u0, u1) > rect[0]
        and min(u0, u1) < rect[2]
    )


def u_shape_path(
    source: Point,
    side: Side,
    source_rect: Rect,
    target_rect: Rect,
    target: Point,
    config: RoutingConfig = DEFAULT_CONFIG,
) -> RoutedPath:
    """Route that leaves and re-enters on the same side, past both boxes.

    The parallel run sits ``safe_clear`` beyond the outer edge of both
    boxes (and at least a lead length from each port). If a box blocks the
    straight exit or the straight return, the route first steps around
    both boxes above or below, whichever is shorter.

    Args:
        source: Source port position
        side: Side the route leaves the source and enters the target on
        source_rect: Source node bounds
        target_rect: Target node bounds
        target: Target port position on ``side`` of the target node
        config: Routing configuration

    Returns:
        Rounded, trimmed orthogonal path
    """
    to_frame = _TO_FRAME[side]
    s = to_frame(source)
    t = to_frame(target)
    sr = _rect_to_frame(source_rect, side)
    tr = _rect_to_frame(target_rect, side)
    lead = config.lead_length
    clear = config.safe_clear

    outer = max(max(sr[2], tr[2]) + clear, s[0] + lead, t[0] + lead)
    above = min(sr[1], tr[1]) - clear
    below = max(sr[3], tr[3]) + clear

    def detour(v_from: float, v_to: float) -> float:
        cost_below = abs(v_from - below) + abs(v_to - below)
        cost_above = abs(v_from - above) + abs(v_to - above)
        return below if cost_below <= cost_above else above

    points: list[Point] = [s]
    v = s[1]
    if _run_blocked(v, s[0], outer, tr):
        stub = s[0] + max(0.0, min(lead, (tr[0] - s[0]) / 2))
        v = detour(s[1], t[1])
        points += [(stub, s[1]), (stub, v)]
    points.append((outer, v))

    if _run_blocked(t[1], t[0], outer, sr):
        stub = t[0] + max(0.0, min(lead, (sr[0] - t[0]) / 2))
        v_back = detour(v, t[1])
        points += [(outer, v_back), (stub, v_back), (stub, t[1])]
    else:
        points.append((outer, t[1]))
    points.append(t)

    from_frame = _FROM_FRAME[side]
    points = compact_polyline([from_frame(p) for p in points])
    points = trim_endpoint(points, config.arrow_trim_distance)
    return RoutedPath(
        commands=rounded_commands(points, config.corner_radius),
        waypoints=points,
        source_side=side,
        target_side=side,
        strategy="u-shape",
    )


def avoidance_path(
    source: Point,
    target: Point,
    obstacles: SpatialIndex,
    config: RoutingConfig = DEFAULT_CONFIG,
    exclude: Iterable[str] = (),
) -> RoutedPath | None:
    """Curve bent around obstacles lying on the straight chord.

    One waypoint is placed on the perpendicular through the chord's
    midpoint, on whichever side gives fewer collisions over both halves
    (the positive normal wins ties). The offset is at least
    ``avoidance_strength`` and always enough to clear every obstacle hit by
    the chord, grown by ``collision_margin``.

    Returns:
        The smoothed path, or None when the chord is already clear
    """
    margin = config.collision_margin
    excluded = tuple(exclude)
    colliding = obstacles.query_segment(source, target, margin, excluded)
    if not colliding:
        return None

    mid = midpoint(source, target)
    normal = perpendicular(source, target)

    best: tuple[int, Point] | None = None
    for sign in (1.0, -1.0):
        direction = scale(normal, sign)
        clearance = max(
            ray_clearance(mid, direction, expand_rect(node.bounds, margin))
            for node in colliding
        )
        waypoint = add(mid, scale(direction, max(config.avoidance_strength, clearance + 1.0)))
        hits = obstacles.count_collisions(
            source, waypoint, margin, excluded
        ) + obstacles.count_collisions(waypoint, target, margin, excluded)
        if best is None or hits < best[0]:
            best = (hits, waypoint)

    hits, waypoint = best
    logger.debug(
        "Routing around %d obstacle(s) via %s (%d remaining collisions)",
        len(colliding),
        waypoint,
        hits,
    )
    end = sub(target, scale(normalize(sub(target, waypoint)), config.arrow_offset))
    points = [source, waypoint, end]
    controls = catmull_rom_controls(points)

    commands = [PathCommand("M", (source,))]
    for i in range(1, len(controls), 3):
        commands.append(PathCommand("C", tuple(controls[i : i + 3])))
    return RoutedPath(commands=commands, waypoints=points, strategy="avoidance")


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteRequest:
    """Resolved inputs for a single route."""

    source: Point
    target: Point
    source_side: Side
    target_side: Side
    source_node: NodeBox | None = None
    target_node: NodeBox | None = None
    sibling_offset: float = 0.0
    obstacles: SpatialIndex | None = None
    exclude: tuple[str, ...] = ()


def _route_workflow(request: RouteRequest, config: RoutingConfig) -> RoutedPath:
    if config.avoid_obstacles and request.obstacles is not None and len(request.obstacles):
        path = avoidance_path(
            request.source, request.target, request.obstacles, config, request.exclude
        )
        if path is not None:
            return replace(path, source_side=request.source_side, target_side=request.target_side)
    return bezier_path(
        request.source,
        request.target,
        connection_flow(request.source_side, request.target_side),
        config,
        sibling_offset=request.sibling_offset,
        source_side=request.source_side,
        target_side=request.target_side,
    )


def _route_architecture(request: RouteRequest, config: RoutingConfig) -> RoutedPath:
    source_node, target_node = request.source_node, request.target_node
    if (
        source_node is not None
        and target_node is not None
        and needs_u_shape(request.source, request.source_side, target_node, config.lead_length)
    ):
        side = request.source_side
        target = (
            request.target
            if request.target_side == side
            else resolve_side_anchor(target_node, side)
        )
        return u_shape_path(
            request.source, side, source_node.bounds, target_node.bounds, target, config
        )
    return orthogonal_path(
        request.source, request.source_side, request.target, request.target_side, config
    )


_STRATEGIES: dict[RoutingMode, Callable[[RouteRequest, RoutingConfig], RoutedPath]] = {
    RoutingMode.WORKFLOW: _route_workflow,
    RoutingMode.ARCHITECTURE: _route_architecture,
}


def generate_path(
    request: RouteRequest,
    mode: RoutingMode = RoutingMode.WORKFLOW,
    config: RoutingConfig = DEFAULT_CONFIG,
) -> RoutedPath:
    """Route one connection with the strategy for ``mode``.

    Never raises for degenerate geometry: a zero-length vector or a
    non-finite coordinate anywhere yields a straight line between the raw
    endpoints with ``degraded=True``.
    """
    if not (is_finite_point(request.source) and is_finite_point(request.target)):
        logger.debug("Non-finite endpoint %s -> %s, drawing straight", request.source, request.target)
        return straight_path(request.source, request.target)

    try:
        path = _STRATEGIES[mode](request, config)
    except DegenerateInputError as exc:
        logger.debug("Falling back to a straight line: %s", exc)
        return straight_path(request.source, request.target)

    if not all(is_finite_point(p) for p in path.all_points()):
        logger.debug("%s route produced non-finite points, drawing straight", path.strategy)
        return straight_path(request.source, request.target)
    return path


def simplify_for_level(
    path: RoutedPath,
    level: RenderLevel,
    tolerance: float = 5.0,
) -> RoutedPath:
    """Reduce LOW-detail paths to a Douglas-Peucker polyline.

    Endpoints are kept exactly; HIGH and MEDIUM paths are returned as-is.
    """
    if level != RenderLevel.LOW or len(path.commands) < 2:
        return path
    points = simplify_polyline(flatten_commands(path.commands), tolerance)
    commands = [PathCommand("M", (points[0],))]
    commands.extend(PathCommand("L", (p,)) for p in points[1:])
    return replace(path, commands=commands)
