"""Issue taxonomy; the stage runner lives in agentspec.validate.pipeline."""

from agentspec.validate.issues import IssueCollector, IssueKind, Severity, ValidationIssue

__all__ = ["IssueCollector", "IssueKind", "Severity", "ValidationIssue"]
