"""ACL consistency: principal syntax, declared service accounts and orphaned grants."""

from __future__ import annotations

from collections.abc import Iterable

from agentspec.errors import AclFormatError
from agentspec.graph.builder import EdgeKind
from agentspec.policy.principals import parse_principal
from agentspec.spec.loader import PROJECT_FILE
from agentspec.spec.types import AclEntry, ServiceAccountPrincipal, SourceRef
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, IssueKind
from agentspec.validate.suggest import did_you_mean

NAME = "acl"


def _check_principal(
    ctx: BuildContext, text: str, where: SourceRef, issues: IssueCollector
) -> None:
    try:
        principal = parse_principal(text)
    except AclFormatError as exc:
        issues.error(IssueKind.ACL_FORMAT, where, str(exc), exc.suggestion)
        return
    if isinstance(principal, ServiceAccountPrincipal) and (
        principal.name not in ctx.graph.service_accounts
    ):
        issues.error(
            IssueKind.ACL_CONSISTENCY,
            where,
            f'service account "{principal.name}" is not declared in {PROJECT_FILE}',
            suggestion=did_you_mean(principal.name, ctx.graph.service_accounts)
            or f"declare it under service_accounts: in {PROJECT_FILE}",
        )


def _check_acl(
    ctx: BuildContext,
    kind: str,
    name: str,
    acl: Iterable[AclEntry] | None,
    where: SourceRef,
    issues: IssueCollector,
) -> None:
    if acl is None:
        issues.warning(
            IssueKind.ACL_CONSISTENCY,
            where,
            f'{kind} "{name}" declares no acl; every invocation will be denied',
            suggestion="add an acl list naming who may execute or read it",
        )
        return
    for entry in acl:
        _check_principal(ctx, entry.principal, entry.source, issues)


def _check_run_as(ctx: BuildContext, issues: IssueCollector) -> None:
    for edge in ctx.graph.dangling_of(EdgeKind.RUNS_AS):
        issues.error(
            IssueKind.ACL_CONSISTENCY,
            edge.where,
            f'loop "{edge.source.name}" runs as undeclared service account '
            f'"{edge.target.name}"',
            suggestion=did_you_mean(edge.target.name, ctx.graph.service_accounts)
            or f"declare it under service_accounts: in {PROJECT_FILE}",
        )


def _check_grants(ctx: BuildContext, issues: IssueCollector) -> None:
    declared = ctx.graph.declared_tool_refs()
    for grant in ctx.graph.tool_grants:
        if grant.tool not in declared:
            issues.warning(
                IssueKind.ACL_CONSISTENCY,
                grant.source,
                f"tool grant for {grant.tool} matches no tool declared by any agent",
                suggestion=did_you_mean(grant.tool, declared, 0.8),
            )
        for entry in grant.grants:
            _check_principal(ctx, entry.principal, entry.source, issues)


async def run(ctx: BuildContext, issues: IssueCollector) -> None:
    for agent in ctx.graph.agents.values():
        _check_acl(ctx, "agent", agent.name, agent.acl, agent.locate("name"), issues)
    for loop in ctx.graph.loops.values():
        _check_acl(ctx, "loop", loop.name, loop.acl, loop.locate("name"), issues)
    _check_run_as(ctx, issues)
    _check_grants(ctx, issues)
