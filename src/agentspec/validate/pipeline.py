"""Validation pipeline: isolated stages over one reference graph."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from agentspec.config import Settings, get_settings
from agentspec.graph.builder import ReferenceGraph, build_graph
from agentspec.ids import IdKind, new_id
from agentspec.logging import build_log_context, stage_log_context
from agentspec.skills.registry import SkillFetcher
from agentspec.spec.loader import LoadedProject, load_project
from agentspec.spec.types import SourceRef
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, IssueKind, ValidationIssue
from agentspec.validate.probes import Prober
from agentspec.validate.stages import STAGES, Stage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PipelineResult:
    context: BuildContext
    issues: list[ValidationIssue] = field(default_factory=list)
    build_id: str = ""

    @property
    def graph(self) -> ReferenceGraph:
        return self.context.graph

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.issues) - self.error_count

    @property
    def success(self) -> bool:
        return self.error_count == 0

    @property
    def sorted_issues(self) -> list[ValidationIssue]:
        return sorted(self.issues, key=ValidationIssue.sort_key)

    @property
    def unverified_skills(self) -> list[str]:
        """Referenced skills whose bundles were not fetched and checked against the lock."""
        ctx = self.context
        referenced = {str(ref) for agent in ctx.graph.agents.values() for ref in agent.skills}
        return sorted(referenced - ctx.resolved_skills.keys())


async def _run_stage(name: str, stage: Stage, ctx: BuildContext, issues: IssueCollector) -> None:
    started = time.monotonic()
    before = len(issues.issues)
    with stage_log_context(name):
        try:
            await stage(ctx, issues)
        except Exception as exc:
            logger.exception("Validation stage %s crashed", name)
            issues.error(
                IssueKind.INTERNAL,
                SourceRef(ctx.graph.root.name or "."),
                f"stage {name} failed unexpectedly: {type(exc).__name__}: {exc}",
                suggestion="this is a bug in agentspec; other stages still ran",
            )
        logger.debug(
            "Stage %s finished in %.3fs with %d new issue(s)",
            name,
            time.monotonic() - started,
            len(issues.issues) - before,
        )


async def run_pipeline(
    project: LoadedProject,
    settings: Settings | None = None,
    *,
    prober: Prober | None = None,
    fetcher: SkillFetcher | None = None,
    require_verified_skills: bool = False,
    stages: Sequence[tuple[str, Stage]] = STAGES,
) -> PipelineResult:
    """Run every stage in order; issues from all stages are returned together."""
    settings = settings or get_settings()
    build_id = new_id(IdKind.BUILD)
    with build_log_context(build_id, project.root):
        graph = build_graph(project)
        ctx = BuildContext(
            graph=graph,
            settings=settings,
            prober=prober,
            fetcher=fetcher,
            require_verified_skills=require_verified_skills,
        )
        collector = IssueCollector("load")
        collector.extend(project.issues)
        for name, stage in stages:
            await _run_stage(name, stage, ctx, collector.for_stage(name))
        result = PipelineResult(context=ctx, issues=collector.issues, build_id=build_id)
        logger.info(
            "Validated %s: %d error(s), %d warning(s)",
            project.root,
            result.error_count,
            result.warning_count,
        )
        return result


def validate_project(
    root: Path,
    settings: Settings | None = None,
    *,
    prober: Prober | None = None,
    fetcher: SkillFetcher | None = None,
) -> PipelineResult:
    """Synchronous entry point: load root and run the full pipeline."""
    return asyncio.run(
        run_pipeline(load_project(root), settings, prober=prober, fetcher=fetcher)
    )
