"""SVG debug preview of routed connections using drawsvg."""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

import drawsvg as draw

from .models import NodeShape

if TYPE_CHECKING:
    from .engine import RoutingEngine
    from .grouping import BundleDecision
    from .models import NodeBox, PathResult, ViewportBounds

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


class Theme:
    """Color theme for previews."""

    def __init__(
        self,
        background: str = "#ffffff",
        node_fill: str = "#f8fafc",
        node_stroke: str = "#cbd5e1",
        text_color: str = "#1e293b",
        edge_color: str = "#64748b",
        degraded_color: str = "#ef4444",
        viewport_color: str = "#3b82f6",
    ):
        self.background = background
        self.node_fill = node_fill
        self.node_stroke = node_stroke
        self.text_color = text_color
        self.edge_color = edge_color
        self.degraded_color = degraded_color
        self.viewport_color = viewport_color


DEFAULT_THEME = Theme()


class PreviewRenderer:
    """Draws nodes, routed paths and the viewport outline."""

    def __init__(self, theme: Theme | None = None, padding: float = 40.0):
        self.theme = theme or DEFAULT_THEME
        self.padding = padding

    def render(
        self,
        nodes: list[NodeBox],
        results: dict[str, PathResult],
        viewport: ViewportBounds | None = None,
        bundles: dict[str, BundleDecision] | None = None,
    ) -> draw.Drawing:
        """Render a preview drawing.

        Args:
            nodes: Node snapshot
            results: Computed paths by connection id
            viewport: Outlined when given
            bundles: Hidden connections are skipped; bundled primaries get
                a count label

        Returns:
            A drawsvg Drawing sized to fit every node
        """
        min_x = min((n.left for n in nodes), default=0.0) - self.padding
        min_y = min((n.top for n in nodes), default=0.0) - self.padding
        max_x = max((n.right for n in nodes), default=0.0) + self.padding
        max_y = max((n.bottom for n in nodes), default=0.0) + self.padding
        if viewport is not None:
            min_x = min(min_x, viewport.min_x - self.padding)
            min_y = min(min_y, viewport.min_y - self.padding)
            max_x = max(max_x, viewport.max_x + self.padding)
            max_y = max(max_y, viewport.max_y + self.padding)
        width = max_x - min_x
        height = max_y - min_y

        d = draw.Drawing(width, height, origin=(min_x, min_y))
        d.append(draw.Rectangle(min_x, min_y, width, height, fill=self.theme.background))

        for node in nodes:
            self._render_node(d, node)

        # Edges on top so arrowheads stay visible
        for conn_id, result in results.items():
            decision = bundles.get(conn_id) if bundles else None
            if decision is not None and decision.hidden:
                continue
            self._render_path(d, result, decision)

        if viewport is not None:
            d.append(
                draw.Rectangle(
                    viewport.min_x, viewport.min_y, viewport.width, viewport.height,
                    fill="none",
                    stroke=self.theme.viewport_color,
                    stroke_width=1,
                    stroke_dasharray="6,4",
                )
            )
        return d

    def _render_node(self, d: draw.Drawing, node: NodeBox) -> None:
        style = dict(fill=self.theme.node_fill, stroke=self.theme.node_stroke, stroke_width=1.5)
        cx, cy = node.center

        if node.shape == NodeShape.DIAMOND:
            d.append(
                draw.Lines(
                    cx, node.top,
                    node.right, cy,
                    cx, node.bottom,
                    node.left, cy,
                    close=True,
                    **style,
                )
            )
        elif node.shape == NodeShape.CIRCLE:
            d.append(draw.Ellipse(cx, cy, node.width / 2, node.height / 2, **style))
        else:
            d.append(draw.Rectangle(node.x, node.y, node.width, node.height, rx=6, ry=6, **style))

        d.append(
            draw.Text(
                node.id,
                12,
                cx, cy,
                fill=self.theme.text_color,
                font_family="JetBrains Mono, Consolas, monospace",
                text_anchor="middle",
                dominant_baseline="middle",
            )
        )

    def _render_path(
        self,
        d: draw.Drawing,
        result: PathResult,
        decision: BundleDecision | None,
    ) -> None:
        color = self.theme.degraded_color if result.degraded else self.theme.edge_color
        style = dict(stroke=color, stroke_width=1.5, fill="none")
        if result.degraded:
            style["stroke_dasharray"] = "5,5"
        d.append(draw.Path(d=result.path_string, **style))

        # Arrowhead follows the last two coordinates (control point or corner -> end)
        numbers = [float(v) for v in _NUMBER_RE.findall(result.path_string)]
        if len(numbers) >= 4:
            px, py, tx, ty = numbers[-4:]
            if (px, py) != (tx, ty):
                self._draw_arrowhead(d, tx, ty, math.atan2(ty - py, tx - px), 8, color)

        if decision is not None and decision.count > 1 and result.label_anchor is not None:
            mid_x, mid_y = result.label_anchor
            d.append(
                draw.Circle(
                    mid_x, mid_y, 9,
                    fill=self.theme.background,
                    stroke=color,
                    stroke_width=1,
                )
            )
            d.append(
                draw.Text(
                    str(decision.count),
                    10,
                    mid_x, mid_y,
                    fill=self.theme.text_color,
                    text_anchor="middle",
                    dominant_baseline="middle",
                )
            )

    def _draw_arrowhead(
        self,
        d: draw.Drawing,
        x: float,
        y: float,
        angle: float,
        size: float,
        color: str,
    ) -> None:
        p1_x = x - size * math.cos(angle - math.pi / 6)
        p1_y = y - size * math.sin(angle - math.pi / 6)
        p2_x = x - size * math.cos(angle + math.pi / 6)
        p2_y = y - size * math.sin(angle + math.pi / 6)

        d.append(
            draw.Lines(
                x, y,
                p1_x, p1_y,
                p2_x, p2_y,
                x, y,
                fill=color,
                stroke="none",
            )
        )


def render_preview(
    engine: RoutingEngine,
    bundle: bool = True,
    theme: Theme | None = None,
) -> draw.Drawing:
    """Route every visible connection of an engine and draw the result."""
    connections = engine.source.get_connections()
    if engine.viewport is not None:
        visible = set(engine.get_visible_connections())
        connections = [c for c in connections if c.id in visible]
    results = engine.compute_paths(connections)
    bundles = engine.plan_bundles(results) if bundle else None
    return PreviewRenderer(theme).render(
        list(engine.source.get_nodes()), results, engine.viewport, bundles
    )


def render_to_svg(
    engine: RoutingEngine,
    filename: str | None = None,
    bundle: bool = True,
) -> str:
    """Render an engine's diagram to SVG.

    Args:
        engine: Engine to preview
        filename: Optional filename to save to (without extension)
        bundle: Collapse sibling connections per the engine's bundle plan

    Returns:
        SVG content as string
    """
    drawing = render_preview(engine, bundle=bundle)

    if filename:
        drawing.save_svg(f"{filename}.svg")

    return drawing.as_svg()
