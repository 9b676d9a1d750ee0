"""Pytest configuration and shared fixtures for routeplot tests."""

import re

import pytest

from routeplot import (
    Connection,
    DiagramSnapshot,
    ManualFrameScheduler,
    NodeBox,
    Port,
    PortKind,
    RoutingConfig,
    RoutingEngine,
    RoutingMode,
    Side,
)

NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


def workflow_node(node_id, x, y, width=200, height=80, **kwargs):
    """Node with one input (left) and one output (right) port."""
    ports = (
        Port("in", node_id, PortKind.INPUT),
        Port("out", node_id, PortKind.OUTPUT),
    )
    return NodeBox(node_id, x, y, width, height, ports=ports, **kwargs)


def architecture_node(node_id, x, y, width=100, height=100, **kwargs):
    """Node with one side port on each of its four sides."""
    ports = tuple(
        Port(side.value, node_id, PortKind.SIDE, side=side)
        for side in (Side.LEFT, Side.RIGHT, Side.TOP, Side.BOTTOM)
    )
    return NodeBox(node_id, x, y, width, height, ports=ports, **kwargs)


def link(conn_id, source, target, source_port="out", target_port="in", mode=RoutingMode.WORKFLOW):
    return Connection(conn_id, source, source_port, target, target_port, mode)


def parse_points(path_data):
    """All coordinate pairs in serialized path data."""
    numbers = [float(v) for v in NUMBER_RE.findall(path_data)]
    return list(zip(numbers[0::2], numbers[1::2]))


@pytest.fixture
def clock():
    """Fake millisecond clock starting at zero."""
    return FakeClock()


@pytest.fixture
def frames():
    """Manually stepped frame scheduler."""
    return ManualFrameScheduler()


@pytest.fixture
def workflow_snapshot():
    """Three workflow nodes in a row with two connections."""
    return DiagramSnapshot(
        nodes=[
            workflow_node("a", 0, 0),
            workflow_node("b", 400, 100),
            workflow_node("c", 800, 0),
        ],
        connections=[
            link("a-b", "a", "b"),
            link("b-c", "b", "c"),
        ],
    )


@pytest.fixture
def engine(workflow_snapshot, frames, clock):
    """Engine over the workflow snapshot with a fake clock."""
    return RoutingEngine(workflow_snapshot, RoutingConfig(), frames=frames, clock=clock)


@pytest.fixture
def u_shape_snapshot():
    """Architecture nodes A (x 0..100) and B (x 110..210) side by side."""
    return DiagramSnapshot(
        nodes=[
            architecture_node("A", 0, 0),
            architecture_node("B", 110, 0),
        ],
        connections=[
            link("A-B", "A", "B", "right", "left", RoutingMode.ARCHITECTURE),
        ],
    )
