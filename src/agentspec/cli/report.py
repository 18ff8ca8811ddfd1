"""Build report rendering: one line per issue, sorted by file and line."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from agentspec.validate.issues import Severity, ValidationIssue


def _red(text: str) -> str:
    return f"\033[31m{text}\033[0m"


def _yellow(text: str) -> str:
    return f"\033[33m{text}\033[0m"


def _green(text: str) -> str:
    return f"\033[32m{text}\033[0m"


def _bold(text: str) -> str:
    return f"\033[1m{text}\033[0m"


def summary_line(error_count: int, warning_count: int) -> str:
    return f"{error_count} error(s), {warning_count} warning(s)"


def _format_issue(issue: ValidationIssue, color: bool) -> str:
    if not color:
        return issue.format()
    paint = _red if issue.severity is Severity.ERROR else _yellow
    head = (
        f"{_bold(f'{issue.file}:{issue.line}:')} {paint(str(issue.severity))} "
        f"[{issue.kind}] {issue.message}"
    )
    if issue.suggestion:
        return f"{head}\n  {_yellow('Fix:')} {issue.suggestion}"
    return head


def format_report(issues: Iterable[ValidationIssue], *, color: bool = False) -> str:
    ordered = sorted(issues, key=ValidationIssue.sort_key)
    errors = sum(1 for issue in ordered if issue.is_error)
    lines = [_format_issue(issue, color) for issue in ordered]
    summary = summary_line(errors, len(ordered) - errors)
    if color:
        summary = _red(summary) if errors else _green(summary)
    lines.append(summary)
    return "\n".join(lines)


def report_json(issues: Iterable[ValidationIssue], **extra: Any) -> str:
    ordered = sorted(issues, key=ValidationIssue.sort_key)
    errors = sum(1 for issue in ordered if issue.is_error)
    data = {
        "success": errors == 0,
        "errors": errors,
        "warnings": len(ordered) - errors,
        "issues": [issue.to_dict() for issue in ordered],
        **extra,
    }
    return json.dumps(data, indent=2)
