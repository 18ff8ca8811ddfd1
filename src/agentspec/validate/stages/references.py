"""Reference validation: duplicate names, loop targets and agent call cycles."""

from __future__ import annotations

from collections.abc import Mapping

import networkx as nx

from agentspec.graph.builder import EdgeKind, NodeKind
from agentspec.spec.types import AGENT_TOOL_PREFIX
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, IssueKind
from agentspec.validate.suggest import did_you_mean

NAME = "references"

_KIND_LABELS = {
    NodeKind.AGENT: "agent",
    NodeKind.LOOP: "loop",
    NodeKind.SERVICE_ACCOUNT: "service account",
    NodeKind.CREDENTIAL: "credential",
    NodeKind.TOOL: "tool",
}


def call_graph(calls: Mapping[str, tuple[str, ...]]) -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_nodes_from(calls)
    for caller, targets in calls.items():
        graph.add_edges_from((caller, target) for target in targets if target in calls)
    return graph


def find_cycles(calls: Mapping[str, tuple[str, ...]]) -> list[tuple[str, ...]]:
    """Return every elementary agent call cycle once, rotated to start at its smallest name."""
    graph = call_graph(calls)
    if nx.is_directed_acyclic_graph(graph):
        return []
    found: set[tuple[str, ...]] = set()
    for cycle in nx.simple_cycles(graph):
        start = cycle.index(min(cycle))
        found.add(tuple(cycle[start:] + cycle[:start]))
    return sorted(found)


def format_cycle(cycle: tuple[str, ...]) -> str:
    return " -> ".join((*cycle, cycle[0]))


def _check_duplicates(ctx: BuildContext, issues: IssueCollector) -> None:
    for dup in ctx.graph.duplicates:
        issues.error(
            IssueKind.SCHEMA,
            dup.again,
            f'duplicate {_KIND_LABELS[dup.kind]} name "{dup.name}" (first defined at {dup.first})',
            suggestion="rename one of them; names must be unique within a project",
        )


def _check_loop_agents(ctx: BuildContext, issues: IssueCollector) -> None:
    for edge in ctx.graph.dangling_of(EdgeKind.INVOKES):
        issues.error(
            IssueKind.REFERENCE,
            edge.where,
            f'loop "{edge.source.name}" invokes agent "{edge.target.name}", '
            "which is not defined",
            suggestion=did_you_mean(edge.target.name, ctx.graph.agents),
        )


def _check_cycles(ctx: BuildContext, issues: IssueCollector) -> None:
    for cycle in find_cycles(ctx.graph.agent_call_edges()):
        head = ctx.graph.agents[cycle[0]]
        callee = cycle[1] if len(cycle) > 1 else cycle[0]
        entry = head.tool(f"{AGENT_TOOL_PREFIX}{callee}")
        issues.error(
            IssueKind.CYCLE,
            entry.source if entry is not None else head.locate("tools"),
            f"agent call cycle: {format_cycle(cycle)}",
            suggestion="remove one of the agent tools so calls cannot recurse",
        )


async def run(ctx: BuildContext, issues: IssueCollector) -> None:
    _check_duplicates(ctx, issues)
    _check_loop_agents(ctx, issues)
    _check_cycles(ctx, issues)
