"""Model validation: every agent names a supported model."""

from __future__ import annotations

from agentspec.spec.models import is_supported, suggest_model, unknown_model_message
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, IssueKind

NAME = "models"


async def run(ctx: BuildContext, issues: IssueCollector) -> None:
    for agent in ctx.graph.agents.values():
        if is_supported(agent.model):
            continue
        issues.error(
            IssueKind.SCHEMA,
            agent.locate("model"),
            unknown_model_message(agent.model),
            suggestion=suggest_model(agent.model),
        )
