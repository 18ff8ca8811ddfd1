"""Reference graph linking agents, tools, loops and service accounts."""

from agentspec.graph.builder import (
    DanglingEdge,
    Edge,
    EdgeKind,
    NodeId,
    NodeKind,
    ReferenceGraph,
    build_graph,
)

__all__ = [
    "DanglingEdge",
    "Edge",
    "EdgeKind",
    "NodeId",
    "NodeKind",
    "ReferenceGraph",
    "build_graph",
]
