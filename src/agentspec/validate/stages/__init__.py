"""Validation stages in execution order: cheap local checks before network work."""

from collections.abc import Awaitable, Callable

from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector
from agentspec.validate.stages import acl, bundling, models, references, skills, tools

Stage = Callable[[BuildContext, IssueCollector], Awaitable[None]]

STAGES: tuple[tuple[str, Stage], ...] = (
    (models.NAME, models.run),
    (tools.NAME, tools.run),
    (skills.NAME, skills.run),
    (references.NAME, references.run),
    (acl.NAME, acl.run),
    (bundling.NAME, bundling.run),
)

__all__ = ["STAGES", "Stage"]
