"""Cross-document reference graph over agents, tools, loops and service accounts."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType

from agentspec.spec.loader import LoadedProject
from agentspec.spec.types import (
    AgentSpec,
    AgentTool,
    Credential,
    LocalTool,
    LoopSpec,
    RemoteTool,
    ServiceAccount,
    SkillLock,
    SourceRef,
    ToolEntry,
    ToolGrant,
)

logger = logging.getLogger(__name__)


class NodeKind(StrEnum):
    AGENT = "agent"
    TOOL = "tool"
    LOOP = "loop"
    SERVICE_ACCOUNT = "service_account"
    CREDENTIAL = "credential"


class EdgeKind(StrEnum):
    DECLARES = "declares"
    TARGETS = "targets"
    INVOKES = "invokes"
    RUNS_AS = "runs_as"
    USES_CREDENTIAL = "uses_credential"


@dataclass(frozen=True, slots=True)
class NodeId:
    kind: NodeKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.name}"


@dataclass(frozen=True, slots=True)
class Edge:
    kind: EdgeKind
    source: NodeId
    target: NodeId
    where: SourceRef


@dataclass(frozen=True, slots=True)
class DanglingEdge:
    kind: EdgeKind
    source: NodeId
    target: NodeId
    where: SourceRef


@dataclass(frozen=True, slots=True)
class Duplicate:
    kind: NodeKind
    name: str
    first: SourceRef
    again: SourceRef


@dataclass(frozen=True, slots=True)
class ToolUse:
    agent: str
    entry: ToolEntry


class ReferenceGraph:
    """Immutable name-indexed graph; unresolved references are kept as dangling edges."""

    def __init__(
        self,
        *,
        root: Path,
        agents: dict[str, AgentSpec],
        loops: dict[str, LoopSpec],
        service_accounts: dict[str, ServiceAccount],
        credentials: dict[str, Credential],
        tools: dict[str, tuple[ToolUse, ...]],
        tool_grants: tuple[ToolGrant, ...],
        lock: SkillLock,
        edges: tuple[Edge, ...],
        dangling: tuple[DanglingEdge, ...],
        duplicates: tuple[Duplicate, ...],
    ) -> None:
        self.root = root
        self.agents: Mapping[str, AgentSpec] = MappingProxyType(agents)
        self.loops: Mapping[str, LoopSpec] = MappingProxyType(loops)
        self.service_accounts: Mapping[str, ServiceAccount] = MappingProxyType(service_accounts)
        self.credentials: Mapping[str, Credential] = MappingProxyType(credentials)
        self.tools: Mapping[str, tuple[ToolUse, ...]] = MappingProxyType(tools)
        self.tool_grants = tool_grants
        self.lock = lock
        self.edges = edges
        self.dangling = dangling
        self.duplicates = duplicates

    @property
    def nodes(self) -> tuple[NodeId, ...]:
        found = [NodeId(NodeKind.AGENT, name) for name in self.agents]
        found += [NodeId(NodeKind.TOOL, ref) for ref in self.tools]
        found += [NodeId(NodeKind.LOOP, name) for name in self.loops]
        found += [NodeId(NodeKind.SERVICE_ACCOUNT, name) for name in self.service_accounts]
        found += [NodeId(NodeKind.CREDENTIAL, name) for name in self.credentials]
        return tuple(found)

    def dangling_of(self, kind: EdgeKind) -> tuple[DanglingEdge, ...]:
        return tuple(edge for edge in self.dangling if edge.kind is kind)

    def agent_call_edges(self) -> Mapping[str, tuple[str, ...]]:
        """Resolved agent -> agent edges induced by agent tools, in declaration order."""
        calls: dict[str, list[str]] = {name: [] for name in self.agents}
        for edge in self.edges:
            if edge.kind is EdgeKind.TARGETS:
                calls[edge.source.name].append(edge.target.name)
        return MappingProxyType({name: tuple(targets) for name, targets in calls.items()})

    def declared_tool_refs(self) -> frozenset[str]:
        return frozenset(self.tools)


def _index(
    items: list[AgentSpec] | list[LoopSpec] | tuple[ServiceAccount, ...] | tuple[Credential, ...],
    kind: NodeKind,
    duplicates: list[Duplicate],
) -> dict:
    indexed: dict = {}
    for item in items:
        existing = indexed.get(item.name)
        if existing is not None:
            duplicates.append(Duplicate(kind, item.name, existing.source, item.source))
            continue
        indexed[item.name] = item
    return indexed


def build_graph(loaded: LoadedProject) -> ReferenceGraph:
    """Assemble the reference graph. Never raises on missing referents."""
    duplicates: list[Duplicate] = []
    agents: dict[str, AgentSpec] = _index(loaded.agents, NodeKind.AGENT, duplicates)
    loops: dict[str, LoopSpec] = _index(loaded.loops, NodeKind.LOOP, duplicates)
    accounts: dict[str, ServiceAccount] = _index(
        loaded.project.service_accounts, NodeKind.SERVICE_ACCOUNT, duplicates
    )
    credentials: dict[str, Credential] = _index(
        loaded.project.credentials, NodeKind.CREDENTIAL, duplicates
    )

    edges: list[Edge] = []
    dangling: list[DanglingEdge] = []
    tools: dict[str, list[ToolUse]] = {}

    def link(kind: EdgeKind, source: NodeId, target: NodeId, where: SourceRef, ok: bool) -> None:
        if ok:
            edges.append(Edge(kind, source, target, where))
        else:
            dangling.append(DanglingEdge(kind, source, target, where))

    for agent in agents.values():
        agent_node = NodeId(NodeKind.AGENT, agent.name)
        for entry in agent.tools:
            tools.setdefault(entry.ref, []).append(ToolUse(agent.name, entry))
            tool_node = NodeId(NodeKind.TOOL, entry.ref)
            edges.append(Edge(EdgeKind.DECLARES, agent_node, tool_node, entry.source))
            match entry:
                case AgentTool(agent=target):
                    link(
                        EdgeKind.TARGETS,
                        agent_node,
                        NodeId(NodeKind.AGENT, target),
                        entry.source,
                        target in agents,
                    )
                case RemoteTool(credential=credential) if credential is not None:
                    link(
                        EdgeKind.USES_CREDENTIAL,
                        tool_node,
                        NodeId(NodeKind.CREDENTIAL, credential),
                        entry.source,
                        credential in credentials,
                    )
                case RemoteTool() | LocalTool():
                    pass

    for loop in loops.values():
        loop_node = NodeId(NodeKind.LOOP, loop.name)
        link(
            EdgeKind.INVOKES,
            loop_node,
            NodeId(NodeKind.AGENT, loop.agent),
            loop.locate("agent"),
            loop.agent in agents,
        )
        link(
            EdgeKind.RUNS_AS,
            loop_node,
            NodeId(NodeKind.SERVICE_ACCOUNT, loop.run_as),
            loop.locate("run_as"),
            loop.run_as in accounts,
        )

    graph = ReferenceGraph(
        root=loaded.root,
        agents=agents,
        loops=loops,
        service_accounts=accounts,
        credentials=credentials,
        tools={ref: tuple(uses) for ref, uses in tools.items()},
        tool_grants=loaded.project.tool_grants,
        lock=loaded.lock,
        edges=tuple(edges),
        dangling=tuple(dangling),
        duplicates=tuple(duplicates),
    )
    logger.debug(
        "Built reference graph: %d nodes, %d edges, %d dangling",
        len(graph.nodes),
        len(graph.edges),
        len(graph.dangling),
    )
    return graph
