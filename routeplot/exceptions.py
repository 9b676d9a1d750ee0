"""Exceptions raised by the routing core."""

from __future__ import annotations


class GeometryError(Exception):
    """Base class for geometry and port-resolution failures."""


class UnknownReferenceError(GeometryError):
    """A node or port id could not be resolved against the diagram snapshot.

    Fatal for the single connection being routed; batch callers log it and
    move on to the next connection.

    Attributes:
        node_id: The node that was looked up
        port_id: The port that was looked up, if the node itself was found
        message: Human-readable error message
    """

    def __init__(
        self,
        node_id: str | None,
        port_id: str | None = None,
        message: str | None = None,
    ) -> None:
        self.node_id = node_id
        self.port_id = port_id
        self.message = message or self._default_message()
        super().__init__(self.message)

    def _default_message(self) -> str:
        if self.port_id is not None:
            return f"Unknown port '{self.port_id}' on node '{self.node_id}'"
        return f"Unknown node '{self.node_id}'"


class DegenerateInputError(GeometryError):
    """Zero-length vector or non-finite coordinate.

    Path generators recover from this locally by falling back to a straight
    line, so callers of the engine never see it.
    """
