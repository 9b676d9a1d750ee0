"""Tests for the routing engine."""

import logging

import pytest

from conftest import FakeClock, link, parse_points, workflow_node
from routeplot import (
    DiagramSnapshot,
    ManualFrameScheduler,
    RenderLevel,
    RoutingConfig,
    RoutingEngine,
    RoutingMode,
    UnknownReferenceError,
    ViewportBounds,
)


class TestComputePath:
    """Tests for compute_path and compute_paths."""

    def test_repeat_call_hits_cache(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        first = engine.compute_path(conn)
        second = engine.compute_path(conn)

        assert not first.cache_hit
        assert second.cache_hit
        assert second.path_string == first.path_string
        assert first.render_level == RenderLevel.HIGH
        assert first.path_string.startswith("M 200 40 C")

    def test_moved_node_misses_cache(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        before = engine.compute_path(conn)
        workflow_snapshot.upsert_node(workflow_node("b", 400, 300))

        after = engine.compute_path(conn)
        assert not after.cache_hit
        assert after.path_string != before.path_string

    def test_invalidate_node(self, engine, workflow_snapshot):
        for conn in workflow_snapshot.get_connections():
            engine.compute_path(conn)
        assert engine.invalidate_node("b") == 2
        assert engine.invalidate_node("b") == 0
        assert not engine.compute_path(workflow_snapshot.connection("a-b")).cache_hit

    def test_label_anchor(self, engine, workflow_snapshot):
        result = engine.compute_path(workflow_snapshot.connection("a-b"))
        x, y = result.label_anchor
        assert 200 < x < 400
        assert 40 < y < 140

    def test_unknown_node_raises(self, engine):
        with pytest.raises(UnknownReferenceError) as exc_info:
            engine.compute_path(link("x", "a", "ghost"))
        assert exc_info.value.node_id == "ghost"

    def test_compute_paths_skips_unknown(self, engine, workflow_snapshot, caplog):
        workflow_snapshot.add_connection(link("bad", "a", "ghost"))
        with caplog.at_level(logging.WARNING, logger="routeplot.engine"):
            results = engine.compute_paths()
        assert set(results) == {"a-b", "b-c"}
        assert "ghost" in caplog.text

    def test_unknown_port_degrades(self, engine):
        result = engine.compute_path(link("p", "a", "b", source_port="nope"))
        assert result.degraded
        assert result.path_string == "M 100 40 L 400 140"

    def test_mode_override(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        result = engine.compute_path(conn, mode=RoutingMode.ARCHITECTURE)
        assert result.path_string.startswith("M 200 40 L 282 40 C")
        assert result.path_string.endswith("L 394.5 140")
        # Different mode, different cache entry
        assert not engine.compute_path(conn).cache_hit

    def test_sibling_connections_fan_out(self, frames, clock):
        snapshot = DiagramSnapshot(
            nodes=[workflow_node("a", 0, 0), workflow_node("b", 400, 100)],
            connections=[link("p1", "a", "b"), link("p2", "a", "b")],
        )
        engine = RoutingEngine(snapshot, frames=frames, clock=clock)
        results = engine.compute_paths()
        assert results["p1"].path_string != results["p2"].path_string
        assert results["p1"].path_string.startswith("M 200 40 ")
        assert results["p2"].path_string.startswith("M 200 40 ")

    def test_swapped_connection_regroups_siblings(self, frames, clock):
        snapshot = DiagramSnapshot(
            nodes=[
                workflow_node("a", 0, 0),
                workflow_node("b", 400, 100),
                workflow_node("c", 800, 0),
            ],
            connections=[link("x", "a", "b"), link("y", "a", "b")],
        )
        engine = RoutingEngine(snapshot, frames=frames, clock=clock)
        engine.compute_path(snapshot.connection("x"))

        # Same connection count, different sibling layout
        snapshot.remove_connection("y")
        snapshot.add_connection(link("z", "b", "c"))
        result = engine.compute_path(snapshot.connection("x"))

        fresh = RoutingEngine(snapshot, frames=ManualFrameScheduler(), clock=FakeClock())
        assert not result.cache_hit
        assert result.path_string == fresh.compute_path(snapshot.connection("x")).path_string
        assert engine.topology.group("x").total == 1

    def test_low_detail_is_polyline(self, engine, workflow_snapshot):
        engine.set_viewport(ViewportBounds(0, 0, 1000, 800, scale=0.25))
        result = engine.compute_path(workflow_snapshot.connection("a-b"))
        assert result.render_level == RenderLevel.LOW
        assert "C" not in result.path_string
        assert result.path_string.startswith("M 200 40 L")


class TestArchitectureRouting:
    """Tests for architecture-mode routing through the engine."""

    def test_same_side_u_shape(self, u_shape_snapshot, frames, clock):
        engine = RoutingEngine(u_shape_snapshot, frames=frames, clock=clock)
        result = engine.compute_path(u_shape_snapshot.connection("A-B"))

        xs = [p[0] for p in parse_points(result.path_string)]
        assert result.path_string.startswith("M 100 50 ")
        assert max(xs) > 210 + 16
        assert result.path_string.endswith("L 215.5 50")
        assert not result.degraded

    def test_bundles(self, u_shape_snapshot, frames, clock):
        u_shape_snapshot.add_connection(
            link("A-B2", "B", "A", "left", "right", RoutingMode.ARCHITECTURE)
        )
        engine = RoutingEngine(u_shape_snapshot, frames=frames, clock=clock)
        decisions = engine.plan_bundles()
        assert decisions["A-B"].count == 2
        assert decisions["A-B2"].hidden


class TestObstacles:
    """Tests for obstacle avoidance through the engine."""

    @pytest.fixture
    def snapshot(self):
        return DiagramSnapshot(
            nodes=[
                workflow_node("a", 0, 0),
                workflow_node("o", 400, 0, width=100),
                workflow_node("c", 700, 0),
            ],
            connections=[link("a-c", "a", "c")],
        )

    def test_routes_around_obstacle(self, snapshot, frames, clock):
        engine = RoutingEngine(snapshot, frames=frames, clock=clock)
        result = engine.compute_path(snapshot.connection("a-c"))
        assert result.path_string.count("C") == 2

    def test_moving_obstacle_refreshes_path(self, snapshot, frames, clock):
        engine = RoutingEngine(snapshot, frames=frames, clock=clock)
        conn = snapshot.connection("a-c")
        engine.compute_path(conn)

        snapshot.upsert_node(workflow_node("o", 400, 400, width=100))
        engine.invalidate_node("o")
        result = engine.compute_path(conn)
        assert not result.cache_hit
        assert result.path_string.count("C") == 1

    def test_disabled_avoidance(self, snapshot, frames, clock):
        config = RoutingConfig(avoid_obstacles=False)
        engine = RoutingEngine(snapshot, config, frames=frames, clock=clock)
        result = engine.compute_path(snapshot.connection("a-c"))
        assert result.path_string.count("C") == 1


class TestDragging:
    """Tests for drag overrides."""

    def test_drag_bypasses_cache(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        engine.compute_path(conn)

        engine.begin_drag("a")
        engine.drag_to("a", 0, 200)
        first = engine.compute_path(conn)
        second = engine.compute_path(conn)
        assert first.path_string.startswith("M 200 240 ")
        assert not first.cache_hit and not second.cache_hit
        assert len(engine.cache) == 1

    def test_end_drag_invalidates(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        engine.compute_path(conn)
        engine.begin_drag("a")
        engine.drag_to("a", 0, 200)

        workflow_snapshot.upsert_node(workflow_node("a", 0, 200))
        engine.end_drag("a")
        assert len(engine.cache) == 0
        assert not engine.compute_path(conn).cache_hit
        result = engine.compute_path(conn)
        assert result.cache_hit
        assert result.path_string.startswith("M 200 240 ")

    def test_node_deleted_mid_drag(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        engine.begin_drag("b")
        workflow_snapshot.remove_node("b")

        result = engine.compute_path(conn)
        assert result.degraded
        assert result.path_string == "M 200 40 L 400 140"
        assert len(engine.cache) == 0

        engine.end_drag("b")
        with pytest.raises(UnknownReferenceError):
            engine.compute_path(conn)


class TestVisibility:
    """Tests for viewport culling through the engine."""

    def test_requires_viewport(self, engine):
        with pytest.raises(ValueError):
            engine.get_visible_connections()

    def test_visible_connections(self, engine):
        engine.set_viewport(ViewportBounds(0, 0, 100, 100))
        assert engine.get_visible_connections() == ["a-b"]
        assert engine.get_metrics().visible_count == 1

    def test_nothing_visible(self, engine):
        assert engine.get_visible_connections(viewport=ViewportBounds(2000, 2000, 2500, 2500)) == []

    def test_index_path_matches(self, workflow_snapshot, frames, clock):
        config = RoutingConfig(spatial_query_threshold=1)
        engine = RoutingEngine(workflow_snapshot, config, frames=frames, clock=clock)
        engine.set_viewport(ViewportBounds(0, 0, 100, 100))
        assert engine.get_visible_connections() == ["a-b"]

    def test_dragged_node_visible_at_dragged_position(self, workflow_snapshot, frames, clock):
        config = RoutingConfig(spatial_query_threshold=1)
        engine = RoutingEngine(workflow_snapshot, config, frames=frames, clock=clock)
        engine.set_viewport(ViewportBounds(0, 0, 100, 100))
        engine.begin_drag("c")
        engine.drag_to("c", 0, 0)
        assert engine.get_visible_connections() == ["a-b", "b-c"]


class TestScheduledUpdates:
    """Tests for request_path and refresh_node."""

    def test_request_path_runs_on_frame(self, engine, frames, workflow_snapshot):
        results = []
        engine.request_path(workflow_snapshot.connection("a-b"), results.append)
        assert results == []
        frames.run_until_idle()
        assert [r.connection_id for r in results] == ["a-b"]

    def test_request_path_unknown_node(self, engine, frames, caplog):
        results = []
        engine.request_path(link("x", "a", "ghost"), results.append)
        with caplog.at_level(logging.WARNING, logger="routeplot.engine"):
            frames.run_until_idle()
        assert results == []
        assert "ghost" in caplog.text

    def test_refresh_node(self, engine, frames):
        results = []
        assert engine.refresh_node("b", results.append) == 2
        assert engine.get_metrics().pending_updates == 2
        frames.run_until_idle()
        assert {r.connection_id for r in results} == {"a-b", "b-c"}

    def test_refresh_node_sees_swapped_connection(self, engine, workflow_snapshot, frames):
        assert len(engine.topology) == 2
        workflow_snapshot.remove_connection("a-b")
        workflow_snapshot.add_connection(link("c-a", "c", "a"))

        results = []
        assert engine.refresh_node("c", results.append) == 2
        frames.run_until_idle()
        assert {r.connection_id for r in results} == {"b-c", "c-a"}

    def test_refresh_unconnected_node(self, engine):
        assert engine.refresh_node("nowhere", lambda result: None) == 0


class TestHousekeeping:
    """Tests for maintenance and metrics."""

    def test_perform_maintenance(self, engine, workflow_snapshot, clock, caplog):
        engine.compute_path(workflow_snapshot.connection("a-b"))
        clock.advance(300_001)
        with caplog.at_level(logging.INFO, logger="routeplot.engine"):
            assert engine.perform_maintenance() == 1
        assert "Purged 1" in caplog.text
        assert len(engine.cache) == 0

    def test_metrics(self, engine, workflow_snapshot):
        conn = workflow_snapshot.connection("a-b")
        engine.compute_path(conn)
        engine.compute_path(conn)

        metrics = engine.get_metrics()
        assert metrics.cache_size == 1
        assert metrics.cache_hit_rate == 0.5
        assert metrics.obstacle_count == 3
        assert metrics.last_compute_duration_ms >= 0
        assert metrics.extra["cache_hits"] == 1

    def test_default_frames_and_clock(self, workflow_snapshot):
        engine = RoutingEngine(workflow_snapshot)
        assert isinstance(engine.frames, ManualFrameScheduler)
        assert engine.cache.capacity == 1000


class TestDiagramSnapshot:
    """Tests for the in-memory source."""

    def test_connection_lookup(self, workflow_snapshot):
        assert workflow_snapshot.connection("a-b").target_node_id == "b"
        assert workflow_snapshot.connection("zz") is None

    def test_remove_connection(self, workflow_snapshot):
        assert workflow_snapshot.remove_connection("a-b")
        assert not workflow_snapshot.remove_connection("a-b")
        assert [c.id for c in workflow_snapshot.get_connections()] == ["b-c"]

    def test_remove_node(self, workflow_snapshot):
        assert workflow_snapshot.remove_node("a").id == "a"
        assert workflow_snapshot.get_node("a") is None

    def test_topology_follows_connections(self, workflow_snapshot):
        engine = RoutingEngine(workflow_snapshot, clock=FakeClock())
        assert len(engine.topology) == 2
        workflow_snapshot.add_connection(link("c-a", "c", "a"))
        assert len(engine.topology) == 3
