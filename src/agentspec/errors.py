"""agentspec exception hierarchy.

All agentspec-specific exceptions inherit from AgentSpecError,
enabling structured error handling and cleaner catch clauses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentspec.validate.issues import ValidationIssue


class AgentSpecError(Exception):
    """Base exception for all agentspec errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(AgentSpecError):
    """Invalid or missing configuration."""


class SpecParseError(AgentSpecError):
    """A single spec document failed to parse or validate."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        lines = "\n".join(f"  - {issue.message}" for issue in issues)
        super().__init__(f"Invalid agent spec:\n{lines}")
        self.issues = issues


class BuildError(AgentSpecError):
    """Manifest emission requested for a project with error-severity issues."""


class IntegrityError(AgentSpecError):
    """Content hash does not match its pinned or embedded value."""


class SkillFetchError(AgentSpecError):
    """Error fetching a skill bundle from the registry."""

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class AuthorizationDenied(AgentSpecError):
    """Request denied by the capability, privilege or role check."""

    def __init__(self, check: str, reason: str) -> None:
        super().__init__(f"denied ({check}): {reason}")
        self.check = check
        self.reason = reason


class AclFormatError(AgentSpecError):
    """Principal string does not match user:<id>, group:<name> or serviceaccount:<name>."""

    def __init__(self, message: str, *, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.suggestion = suggestion


class ToolError(AgentSpecError):
    """Error dispatching or executing a tool."""
