"""Configuration for connection routing and rendering performance."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

# Fields that change the shape of a generated path. Anything listed here
# must end up in the path cache key.
_GEOMETRY_FIELDS = (
    "lead_length",
    "safe_clear",
    "arrow_trim_distance",
    "arrow_offset",
    "smoothing_factor",
    "control_offset_min",
    "corner_radius",
    "avoid_obstacles",
    "avoidance_strength",
    "collision_margin",
    "connection_spacing",
    "simplify_tolerance",
)


@dataclass(frozen=True)
class RoutingConfig:
    """Configuration for path generation, culling, caching and scheduling."""

    # Orthogonal / U-shape routing
    lead_length: float = 50.0  # Straight segment leaving each port before any bend
    safe_clear: float = 16.0  # Outward margin a U-shape keeps beyond node edges
    arrow_trim_distance: float = 5.5  # Pull-back of orthogonal endpoints for the marker
    corner_radius: float = 18.0

    # Bezier routing
    arrow_offset: float = 7.0  # Pull-back of curved endpoints for the marker
    smoothing_factor: float = 2.5
    control_offset_min: float = 60.0
    connection_spacing: float = 15.0  # Control-point spread between sibling connections

    # Obstacle avoidance
    avoid_obstacles: bool = True
    avoidance_strength: float = 50.0  # Minimum perpendicular detour distance
    collision_margin: float = 10.0
    grid_size: float = 500.0  # Spatial index cell size

    # Path cache
    cache_capacity: int = 1000
    cache_ttl_ms: float = 5 * 60 * 1000
    cache_evict_fraction: float = 0.2  # Share of entries dropped when full

    # Culling, level of detail, bundling
    culling_margin: float = 100.0
    bundle_threshold: int = 100
    spatial_query_threshold: int = 200  # Node count above which culling uses the index
    simplify_tolerance: float = 5.0  # Douglas-Peucker tolerance for LOW detail

    # Frame scheduler
    batch_size: int = 50

    def __post_init__(self) -> None:
        for name in ("lead_length", "safe_clear", "arrow_trim_distance", "arrow_offset",
                     "corner_radius", "control_offset_min", "collision_margin",
                     "culling_margin", "simplify_tolerance", "connection_spacing",
                     "avoidance_strength"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.smoothing_factor <= 0:
            raise ValueError(f"smoothing_factor must be > 0, got {self.smoothing_factor}")
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be > 0, got {self.grid_size}")
        if self.cache_capacity < 1:
            raise ValueError(f"cache_capacity must be >= 1, got {self.cache_capacity}")
        if self.cache_ttl_ms <= 0:
            raise ValueError(f"cache_ttl_ms must be > 0, got {self.cache_ttl_ms}")
        if not 0 < self.cache_evict_fraction <= 1:
            raise ValueError(
                f"cache_evict_fraction must be in (0, 1], got {self.cache_evict_fraction}"
            )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.bundle_threshold < 0:
            raise ValueError(f"bundle_threshold must be >= 0, got {self.bundle_threshold}")

    def with_overrides(self, **overrides: Any) -> RoutingConfig:
        """Validated copy with some fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    def geometry_signature(self) -> str:
        """Compact string of every field that affects path shape."""
        parts = []
        for name in _GEOMETRY_FIELDS:
            value = getattr(self, name)
            parts.append(str(int(value)) if isinstance(value, bool) else f"{value:g}")
        return ",".join(parts)

    @classmethod
    def production(cls) -> RoutingConfig:
        """Smaller cache for production deployments."""
        return cls(cache_capacity=500)

    @classmethod
    def high_performance(cls) -> RoutingConfig:
        """Dense diagrams (100+ nodes or 500+ connections)."""
        return cls(
            cache_capacity=200,
            culling_margin=50.0,
            avoid_obstacles=False,
            bundle_threshold=50,
        )

    @classmethod
    def mobile(cls) -> RoutingConfig:
        """Touch devices with tight memory budgets."""
        return cls(cache_capacity=100, avoid_obstacles=False, batch_size=25)

    @classmethod
    def for_diagram(
        cls,
        node_count: int,
        connection_count: int,
        mobile: bool = False,
        architecture: bool = False,
    ) -> RoutingConfig:
        """Pick a profile from the size and kind of the diagram.

        Args:
            node_count: Number of nodes in the diagram
            connection_count: Number of connections in the diagram
            mobile: Whether the host is a mobile device
            architecture: Whether the diagram is in architecture mode

        Returns:
            The matching profile
        """
        if mobile:
            return cls.mobile()
        if node_count > 100 or connection_count > 500:
            return cls.high_performance()
        if architecture and connection_count > 100:
            return cls.production().with_overrides(cache_capacity=1000)
        return cls.production()


DEFAULT_CONFIG = RoutingConfig()
