"""Bundling: record local tool sources and compose agent instructions."""

from __future__ import annotations

import logging

from agentspec.manifest.canonical import sha256_bytes
from agentspec.spec.types import AgentSpec, LocalTool
from agentspec.validate.artifacts import BundledTool, resolve_local_tool
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector

logger = logging.getLogger(__name__)

NAME = "bundling"

PROMPT_SEPARATOR = "\n\n"


def compose_instruction(ctx: BuildContext, agent: AgentSpec) -> str:
    parts = [agent.description]
    for ref in agent.skills:
        bundle = ctx.resolved_skills.get(str(ref))
        if bundle is not None:
            parts.extend(bundle.prompts)
    return PROMPT_SEPARATOR.join(parts)


def _bundle_local(ctx: BuildContext, entry: LocalTool) -> BundledTool | None:
    root = ctx.graph.root.resolve()
    path = resolve_local_tool(ctx.graph.root, entry.name)
    if path is None:
        return None
    try:
        data = path.read_bytes()
        code = data.decode("utf-8")
    except (OSError, UnicodeDecodeError):
        # already reported by the tools stage
        logger.debug("Skipping unbundlable local tool %s", entry.name, exc_info=True)
        return None
    return BundledTool(
        ref=entry.ref,
        name=entry.name,
        path=path.relative_to(root).as_posix(),
        sha256=sha256_bytes(data),
        code=code,
        source=entry.source,
    )


async def run(ctx: BuildContext, issues: IssueCollector) -> None:
    for ref in sorted(ctx.graph.tools):
        entry = ctx.graph.tools[ref][0].entry
        if not isinstance(entry, LocalTool):
            continue
        bundled = _bundle_local(ctx, entry)
        if bundled is not None:
            ctx.bundled_tools[ref] = bundled

    for agent in ctx.graph.agents.values():
        ctx.instructions[agent.name] = compose_instruction(ctx, agent)
    logger.debug(
        "Bundled %d local tools and %d agent instructions",
        len(ctx.bundled_tools),
        len(ctx.instructions),
    )
