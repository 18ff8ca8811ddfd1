"""Skill resolution: lock pinning, fetch, integrity and allowlist narrowing."""

from __future__ import annotations

import logging

from agentspec.skills.registry import SkillTool, fetch_all, parse_skill_payload
from agentspec.spec.loader import LOCK_FILE
from agentspec.spec.types import AgentSpec, SkillReference
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, IssueKind

logger = logging.getLogger(__name__)

NAME = "skills"


def _pinned(ctx: BuildContext, ref: SkillReference, issues: IssueCollector) -> bool:
    entry = ctx.graph.lock.get(ref.name)
    if entry is None:
        hint = (
            f"add {ref.name} with version {ref.version} and its integrity to {LOCK_FILE}"
            if ctx.graph.lock.source is not None
            else f"create {LOCK_FILE} pinning {ref}"
        )
        issues.error(
            IssueKind.INTEGRITY, ref.source, f"skill {ref} is not pinned in {LOCK_FILE}", hint
        )
        return False
    if entry.version != ref.version:
        issues.error(
            IssueKind.INTEGRITY,
            ref.source,
            f"skill {ref.name} is requested at {ref.version} "
            f"but {LOCK_FILE} pins {entry.version}",
            suggestion=f"use {ref.name}@{entry.version} or re-pin the lock",
        )
        return False
    return True


def _narrow(
    agent: AgentSpec, ref: SkillReference, tools: tuple[SkillTool, ...], issues: IssueCollector
) -> list[SkillTool]:
    kept: list[SkillTool] = []
    for tool in tools:
        declared = agent.tool(tool.ref)
        if declared is not None and declared.access.satisfies(tool.access):
            kept.append(tool)
            continue
        issues.warning(
            IssueKind.REFERENCE,
            ref.source,
            f'skill {ref} grants {tool.ref} ({tool.access}) which agent "{agent.name}" '
            "does not declare at that access; grant dropped",
            suggestion=f"declare {tool.ref} with access {tool.access} under tools to use it",
        )
    return kept


async def run(ctx: BuildContext, issues: IssueCollector) -> None:
    to_fetch: dict[str, SkillReference] = {}
    pinned: dict[tuple[str, str], bool] = {}
    for agent in ctx.graph.agents.values():
        for ref in agent.skills:
            ok = _pinned(ctx, ref, issues)
            pinned[(agent.name, str(ref))] = ok
            if ok:
                to_fetch.setdefault(str(ref), ref)

    if not to_fetch:
        return
    if ctx.fetcher is None:
        first = min(to_fetch.values(), key=lambda ref: (ref.source.file, ref.source.line))
        message = (
            f"skill fetch skipped for {len(to_fetch)} skill(s) (offline); "
            "bundles were not verified against the lock"
        )
        if ctx.require_verified_skills:
            issues.error(
                IssueKind.INTEGRITY,
                first.source,
                message,
                suggestion="build without --offline so skill bundles can be fetched and checked",
            )
        else:
            issues.warning(IssueKind.INTEGRITY, first.source, message)
        return

    fetched = await fetch_all(
        to_fetch.values(),
        ctx.fetcher,
        timeout_s=ctx.settings.skill_fetch_timeout_seconds,
        max_concurrent=ctx.settings.skill_fetch_max_concurrent,
    )
    failed: dict[str, tuple[IssueKind, str, str | None]] = {}
    for key, ref in to_fetch.items():
        outcome = fetched[key]
        if isinstance(outcome, Exception):
            failed[key] = (IssueKind.REACHABILITY, f"cannot fetch skill {ref}: {outcome}", None)
            continue
        try:
            bundle = parse_skill_payload(ref, outcome)
        except ValueError as exc:
            failed[key] = (IssueKind.INTEGRITY, f"skill {ref}: {exc}", None)
            continue
        expected = ctx.graph.lock.entries[ref.name].integrity
        if bundle.integrity != expected:
            failed[key] = (
                IssueKind.INTEGRITY,
                f"skill {ref} integrity mismatch: {LOCK_FILE} pins {expected}, "
                f"registry served {bundle.integrity}",
                f"review the new bundle, then update its integrity in {LOCK_FILE}",
            )
            continue
        ctx.resolved_skills[key] = bundle

    for agent in ctx.graph.agents.values():
        kept: list[SkillTool] = []
        for ref in agent.skills:
            key = str(ref)
            if key in failed:
                kind, message, suggestion = failed[key]
                issues.error(kind, ref.source, message, suggestion)
            bundle = ctx.resolved_skills.get(key)
            if bundle is not None and pinned.get((agent.name, key)):
                kept += _narrow(agent, ref, bundle.tools, issues)
        ctx.skill_tools[agent.name] = tuple(kept)
    logger.info(
        "Resolved %d of %d skills (%d failed)",
        len(ctx.resolved_skills),
        len(to_fetch),
        len(failed),
    )
