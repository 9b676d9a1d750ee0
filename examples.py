"""Showcase examples for routeplot."""

from routeplot import (
    Connection,
    DiagramSnapshot,
    NodeBox,
    NodeShape,
    Port,
    PortKind,
    RoutingConfig,
    RoutingEngine,
    RoutingMode,
    Side,
    ViewportBounds,
    render_to_svg,
)

ARCH = RoutingMode.ARCHITECTURE


def workflow_node(node_id, x, y, bottom_ports=0, **kwargs):
    """Workflow node with an input, an output and optional bottom ports."""
    ports = [
        Port("in", node_id, PortKind.INPUT),
        Port("out", node_id, PortKind.OUTPUT),
    ]
    ports += [
        Port(f"b{i}", node_id, PortKind.BOTTOM, index=i, total_siblings=bottom_ports)
        for i in range(bottom_ports)
    ]
    return NodeBox(node_id, x, y, ports=tuple(ports), **kwargs)


def service(node_id, x, y):
    """Architecture node with one port per side."""
    ports = tuple(
        Port(side.value, node_id, PortKind.SIDE, side=side)
        for side in (Side.LEFT, Side.RIGHT, Side.TOP, Side.BOTTOM)
    )
    return NodeBox(node_id, x, y, 140, 90, ports=ports)


def example_workflow():
    """Workflow: curved connections, a decision diamond and a node in the way."""
    snapshot = DiagramSnapshot(
        nodes=[
            workflow_node("trigger", 0, 120),
            workflow_node("check", 320, 100, bottom_ports=2, shape=NodeShape.DIAMOND,
                          width=120, height=120),
            workflow_node("notify", 640, 0),
            workflow_node("archive", 640, 260),
            workflow_node("audit", 1000, 120, width=160),
            workflow_node("report", 1400, 120),
        ],
        connections=[
            Connection("c1", "trigger", "out", "check", "in"),
            Connection("c2", "check", "out", "notify", "in"),
            Connection("c3", "check", "b0", "archive", "in"),
            Connection("c4", "check", "b1", "archive", "in"),
            # Passes straight through "audit" unless routed around it
            Connection("c5", "notify", "out", "report", "in"),
            Connection("c6", "archive", "out", "report", "in"),
        ],
    )
    engine = RoutingEngine(snapshot)
    render_to_svg(engine, "docs/workflow")
    return engine


def example_architecture():
    """Architecture: orthogonal routes, a same-side U-shape and a bundle."""
    snapshot = DiagramSnapshot(
        nodes=[
            service("gateway", 0, 100),
            service("auth", 300, 0),
            service("orders", 300, 220),
            service("billing", 460, 220),
            service("db", 700, 120),
        ],
        connections=[
            Connection("a1", "gateway", "right", "auth", "left", ARCH),
            Connection("a2", "gateway", "right", "orders", "left", ARCH),
            # Neighbours too close for a direct route
            Connection("a3", "orders", "right", "billing", "left", ARCH),
            Connection("a4", "auth", "right", "db", "top", ARCH),
            Connection("a5", "billing", "right", "db", "bottom", ARCH),
            Connection("a6", "db", "bottom", "billing", "right", ARCH),
        ],
    )
    engine = RoutingEngine(snapshot, RoutingConfig.for_diagram(5, 6, architecture=True))
    render_to_svg(engine, "docs/architecture")
    return engine


def example_culled():
    """Large grid viewed through a small viewport with culling and LOD."""
    nodes = [workflow_node(f"n{r}_{c}", c * 320, r * 160) for r in range(12) for c in range(12)]
    connections = []
    for r in range(12):
        for c in range(11):
            connections.append(Connection(f"h{r}_{c}", f"n{r}_{c}", "out", f"n{r}_{c + 1}", "in"))
    snapshot = DiagramSnapshot(nodes, connections)

    engine = RoutingEngine(snapshot, RoutingConfig.for_diagram(len(nodes), len(connections)))
    engine.set_viewport(ViewportBounds(400, 200, 1600, 900, scale=0.5))
    render_to_svg(engine, "docs/culled")
    return engine


if __name__ == "__main__":
    import logging
    import os

    logging.basicConfig(level=logging.INFO)
    os.makedirs("docs", exist_ok=True)

    print("Generating workflow example...")
    example_workflow()

    print("Generating architecture example...")
    example_architecture()

    print("Generating culled grid example...")
    metrics = example_culled().get_metrics()
    print(f"  {metrics.visible_count} visible connections, {metrics.cache_size} cached paths")

    print("\nAll examples generated in docs/")
