"""Local tool artifact resolution and shape inspection."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path

from agentspec.spec.types import SourceRef

TOOLS_DIR = "tools"
ENTRYPOINT = "run"


@dataclass(frozen=True, slots=True)
class BundledTool:
    ref: str
    name: str
    path: str
    sha256: str
    code: str
    source: SourceRef


class ArtifactShapeError(ValueError):
    """Artifact exists but does not expose the expected entrypoint."""


def candidate_paths(root: Path, name: str) -> list[Path]:
    bases = [root / name]
    if "/" not in name:
        bases.append(root / TOOLS_DIR / name)
    found: list[Path] = []
    for base in bases:
        found += [base, base.with_name(f"{base.name}.py"), base / "__init__.py"]
    return found


def resolve_local_tool(root: Path, name: str) -> Path | None:
    """Resolve a local tool name to a Python file inside root, or None."""
    resolved_root = root.resolve()
    for candidate in candidate_paths(root, name):
        if not candidate.is_file() or candidate.suffix != ".py":
            continue
        resolved = candidate.resolve()
        if not resolved.is_relative_to(resolved_root):
            continue
        return resolved
    return None


def inspect_tool_source(code: str, filename: str) -> None:
    """Check that code parses and defines a module-level run entrypoint.

    Raises SyntaxError for unparsable code and ArtifactShapeError when the
    entrypoint is missing.
    """
    tree = ast.parse(code, filename=filename)
    for node in tree.body:
        if isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef) and node.name == ENTRYPOINT:
            return
    raise ArtifactShapeError(f"{filename} does not define a top-level {ENTRYPOINT}() function")
