"""Validation issue collection and formatting."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agentspec.spec.types import SourceRef


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


class IssueKind(StrEnum):
    PARSE = "ParseError"
    SCHEMA = "SchemaError"
    REACHABILITY = "ReachabilityError"
    INTEGRITY = "IntegrityError"
    REFERENCE = "ReferenceError"
    CYCLE = "CycleError"
    ACL_FORMAT = "AclFormatError"
    ACL_CONSISTENCY = "AclConsistencyError"
    INTERNAL = "InternalError"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    severity: Severity
    kind: IssueKind
    file: str
    line: int
    message: str
    suggestion: str | None = None
    stage: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def sort_key(self) -> tuple[str, int]:
        return (self.file, self.line)

    def format(self) -> str:
        head = f"{self.file}:{self.line}: {self.severity} [{self.kind}] {self.message}"
        if self.suggestion:
            return f"{head}\n  Fix: {self.suggestion}"
        return head

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": str(self.severity),
            "kind": str(self.kind),
            "file": self.file,
            "line": self.line,
            "message": self.message,
            "suggestion": self.suggestion,
            "stage": self.stage,
        }


class IssueCollector:
    """Accumulates issues across every stage of one build."""

    def __init__(self, stage: str = "") -> None:
        self.stage = stage
        self._issues: list[ValidationIssue] = []

    def add(
        self,
        severity: Severity,
        kind: IssueKind,
        where: SourceRef,
        message: str,
        suggestion: str | None = None,
    ) -> None:
        self._issues.append(
            ValidationIssue(
                severity=severity,
                kind=kind,
                file=where.file,
                line=where.line,
                message=message,
                suggestion=suggestion,
                stage=self.stage,
            )
        )

    def error(
        self, kind: IssueKind, where: SourceRef, message: str, suggestion: str | None = None
    ) -> None:
        self.add(Severity.ERROR, kind, where, message, suggestion)

    def warning(
        self, kind: IssueKind, where: SourceRef, message: str, suggestion: str | None = None
    ) -> None:
        self.add(Severity.WARNING, kind, where, message, suggestion)

    def extend(self, issues: list[ValidationIssue]) -> None:
        self._issues.extend(issues)

    def for_stage(self, stage: str) -> IssueCollector:
        child = IssueCollector(stage)
        child._issues = self._issues
        return child

    @property
    def issues(self) -> list[ValidationIssue]:
        return list(self._issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self._issues if issue.is_error]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self._issues if not issue.is_error]

    def has_errors(self) -> bool:
        return any(issue.is_error for issue in self._issues)
