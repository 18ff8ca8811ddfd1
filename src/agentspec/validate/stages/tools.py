"""Tool resolution: local artifacts, remote reachability and agent/credential targets."""

from __future__ import annotations

import logging

from agentspec.graph.builder import EdgeKind
from agentspec.spec.types import AgentTool, LocalTool, RemoteTool
from agentspec.validate.artifacts import (
    ArtifactShapeError,
    inspect_tool_source,
    resolve_local_tool,
)
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, IssueKind
from agentspec.validate.probes import probe_all
from agentspec.validate.suggest import did_you_mean

logger = logging.getLogger(__name__)

NAME = "tools"

# a remote URL suggestion must be much closer than a name suggestion
URL_CUTOFF = 0.8

Problem = tuple[IssueKind, str, str | None]


def _partition(ctx: BuildContext) -> tuple[list[LocalTool], list[RemoteTool], list[AgentTool]]:
    local: list[LocalTool] = []
    remote: list[RemoteTool] = []
    agent: list[AgentTool] = []
    for uses in ctx.graph.tools.values():
        for use in uses:
            match use.entry:
                case LocalTool() as entry:
                    local.append(entry)
                case RemoteTool() as entry:
                    remote.append(entry)
                case AgentTool() as entry:
                    agent.append(entry)
    return local, remote, agent


def _inspect_local(ctx: BuildContext, name: str) -> Problem | None:
    path = resolve_local_tool(ctx.graph.root, name)
    if path is None:
        return (
            IssueKind.REFERENCE,
            f'local tool "{name}" not found in project',
            f"create tools/{name.removeprefix('tools/')}.py defining run()",
        )
    try:
        code = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return (IssueKind.REFERENCE, f'local tool "{name}" cannot be read: {exc}', None)
    try:
        inspect_tool_source(code, path.name)
    except SyntaxError as exc:
        return (
            IssueKind.SCHEMA,
            f'local tool "{name}" has a syntax error at line {exc.lineno}: {exc.msg}',
            None,
        )
    except ArtifactShapeError as exc:
        return (IssueKind.REFERENCE, f'local tool "{name}": {exc}', "add: def run(**kwargs): ...")
    return None


def _check_local_tools(ctx: BuildContext, entries: list[LocalTool], issues: IssueCollector) -> None:
    checked: dict[str, Problem | None] = {}
    for entry in entries:
        if entry.name not in checked:
            checked[entry.name] = _inspect_local(ctx, entry.name)
        problem = checked[entry.name]
        if problem is not None:
            kind, message, suggestion = problem
            issues.error(kind, entry.source, message, suggestion)
    logger.debug("Checked %d local tool artifacts under %s", len(checked), ctx.graph.root)


async def _check_remote_tools(
    ctx: BuildContext, entries: list[RemoteTool], issues: IssueCollector
) -> None:
    if not entries:
        return
    if ctx.offline:
        first = min(entries, key=lambda entry: (entry.source.file, entry.source.line))
        servers = {entry.server for entry in entries}
        issues.warning(
            IssueKind.REACHABILITY,
            first.source,
            f"reachability probes skipped for {len(servers)} remote tool server(s) (offline)",
        )
        return

    assert ctx.prober is not None
    ctx.probes = await probe_all(
        (entry.server for entry in entries),
        ctx.prober,
        timeout_s=ctx.settings.probe_timeout_seconds,
        max_concurrent=ctx.settings.probe_max_concurrent,
    )
    known_good = set(ctx.reachable_urls) | set(ctx.settings.known_endpoint_list)
    for entry in entries:
        result = ctx.probes[entry.server]
        if result.reachable:
            continue
        # a close known-good URL beats the generic connection hint
        suggestion = did_you_mean(entry.server, known_good - {entry.server}, URL_CUTOFF)
        issues.error(
            IssueKind.REACHABILITY,
            entry.source,
            f"tool server {entry.server} is unreachable: {result.message}",
            suggestion=suggestion or result.fix_hint or None,
        )


def _check_agent_targets(ctx: BuildContext, issues: IssueCollector) -> None:
    for edge in ctx.graph.dangling_of(EdgeKind.TARGETS):
        issues.error(
            IssueKind.REFERENCE,
            edge.where,
            f'agent "{edge.source.name}" uses agent tool "{edge.target.name}", '
            "but no such agent exists",
            suggestion=did_you_mean(edge.target.name, ctx.graph.agents),
        )


def _check_credentials(ctx: BuildContext, issues: IssueCollector) -> None:
    for edge in ctx.graph.dangling_of(EdgeKind.USES_CREDENTIAL):
        issues.error(
            IssueKind.REFERENCE,
            edge.where,
            f'tool {edge.source.name} uses undeclared credential "{edge.target.name}"',
            suggestion=did_you_mean(edge.target.name, ctx.graph.credentials)
            or "declare it under credentials: in project.yaml",
        )


async def run(ctx: BuildContext, issues: IssueCollector) -> None:
    local, remote, agent = _partition(ctx)
    _check_local_tools(ctx, local, issues)
    if agent:
        _check_agent_targets(ctx, issues)
    _check_credentials(ctx, issues)
    await _check_remote_tools(ctx, remote, issues)
