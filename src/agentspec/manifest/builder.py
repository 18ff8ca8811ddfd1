"""Build manifest assembly, content addressing and rollback by hash."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agentspec.errors import BuildError, IntegrityError
from agentspec.manifest.canonical import canonical_json, content_hash
from agentspec.spec.cron import parse_schedule
from agentspec.spec.types import (
    AclEntry,
    AgentSpec,
    AgentTool,
    LocalTool,
    LoopSpec,
    RemoteTool,
    ToolEntry,
)
from agentspec.validate.context import BuildContext
from agentspec.validate.pipeline import PipelineResult

logger = logging.getLogger(__name__)

MANIFEST_FORMAT = "agentspec.manifest/v1"
HASH_KEY = "hash"


@dataclass(frozen=True, slots=True)
class BuildManifest:
    body: Mapping[str, Any]
    hash: str

    @property
    def agents(self) -> list[dict[str, Any]]:
        return list(self.body.get("agents", []))

    @property
    def loops(self) -> list[dict[str, Any]]:
        return list(self.body.get("loops", []))

    def to_dict(self) -> dict[str, Any]:
        return {**self.body, HASH_KEY: self.hash}

    def to_json(self) -> str:
        return canonical_json(self.to_dict(), indent=2) + "\n"


def _tool_record(entry: ToolEntry) -> dict[str, Any]:
    record: dict[str, Any] = {"ref": entry.ref, "access": str(entry.access)}
    match entry:
        case RemoteTool(server=server, credential=credential):
            record.update(kind="remote", server=server, credential=credential)
        case LocalTool(name=name):
            record.update(kind="local", name=name)
        case AgentTool(agent=agent):
            record.update(kind="agent", agent=agent)
    return record


def _acl_record(acl: tuple[AclEntry, ...] | None) -> list[dict[str, str]] | None:
    if acl is None:
        return None
    return [{"principal": entry.principal.strip(), "role": str(entry.role)} for entry in acl]


def _agent_record(ctx: BuildContext, agent: AgentSpec) -> dict[str, Any]:
    skills = []
    for ref in sorted(agent.skills, key=lambda item: (item.name, item.version)):
        skills.append(
            {
                "name": ref.name,
                "version": ref.version,
                "integrity": ctx.resolved_skills[str(ref)].integrity,
            }
        )
    skill_tools = {
        (tool.ref, str(tool.access)) for tool in ctx.skill_tools.get(agent.name, ())
    }
    return {
        "name": agent.name,
        "model": agent.model,
        "description": agent.description,
        "instruction": ctx.instructions.get(agent.name, agent.description),
        "tools": [_tool_record(entry) for entry in agent.tools],
        "skills": skills,
        "skill_tools": [{"ref": ref, "access": access} for ref, access in sorted(skill_tools)],
        "acl": _acl_record(agent.acl),
    }


def _loop_record(loop: LoopSpec) -> dict[str, Any]:
    return {
        "name": loop.name,
        "schedule": loop.schedule,
        "schedule_normalized": parse_schedule(loop.schedule).normalized,
        "agent": loop.agent,
        "run_as": loop.run_as,
        "instruction": loop.instruction,
        "acl": _acl_record(loop.acl),
    }


def manifest_body(ctx: BuildContext) -> dict[str, Any]:
    graph = ctx.graph
    referenced_skills: dict[str, dict[str, Any]] = {}
    for agent in graph.agents.values():
        for ref in agent.skills:
            bundle = ctx.resolved_skills[str(ref)]
            referenced_skills[str(ref)] = {
                "name": ref.name,
                "version": ref.version,
                "integrity": bundle.integrity,
                "prompts": list(bundle.prompts),
            }
    return {
        "format": MANIFEST_FORMAT,
        "agents": [_agent_record(ctx, graph.agents[name]) for name in sorted(graph.agents)],
        "loops": [_loop_record(graph.loops[name]) for name in sorted(graph.loops)],
        "service_accounts": sorted(graph.service_accounts),
        "credentials": [
            {"name": name, "type": graph.credentials[name].type}
            for name in sorted(graph.credentials)
        ],
        "tool_grants": [
            {
                "tool": grant.tool,
                "grants": [
                    {"principal": entry.principal.strip(), "access": str(entry.access)}
                    for entry in grant.grants
                ],
            }
            for grant in sorted(graph.tool_grants, key=lambda item: item.tool)
        ],
        "local_tools": [
            {
                "ref": tool.ref,
                "name": tool.name,
                "path": tool.path,
                "sha256": tool.sha256,
                "code": tool.code,
            }
            for tool in sorted(ctx.bundled_tools.values(), key=lambda item: item.ref)
        ],
        "skills": [referenced_skills[key] for key in sorted(referenced_skills)],
    }


def build_manifest(result: PipelineResult) -> BuildManifest:
    """Assemble the manifest for a zero-error pipeline result with every skill verified."""
    if not result.success:
        raise BuildError(
            f"cannot emit a manifest: validation reported {result.error_count} error(s)"
        )
    if result.unverified_skills:
        raise BuildError(
            "cannot emit a manifest: skills not verified against the lock: "
            + ", ".join(result.unverified_skills)
        )
    body = manifest_body(result.context)
    manifest = BuildManifest(body=body, hash=content_hash(body))
    logger.info(
        "Built manifest %s (%d agents, %d loops)",
        manifest.hash,
        len(body["agents"]),
        len(body["loops"]),
    )
    return manifest


def manifest_path(out_dir: Path, digest: str) -> Path:
    return out_dir / f"{digest}.json"


def write_manifest(manifest: BuildManifest, out_dir: Path) -> Path:
    """Write <hash>.json under out_dir; an identical existing file is left untouched."""
    path = manifest_path(out_dir, manifest.hash)
    text = manifest.to_json()
    if path.is_file() and path.read_text(encoding="utf-8") == text:
        logger.info("Manifest %s already present; skipping write", manifest.hash)
        return path
    out_dir.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)
    logger.info("Wrote manifest %s", path)
    return path


def load_manifest(path_or_hash: str | Path, out_dir: Path | None = None) -> BuildManifest:
    """Load a manifest by file path or by hash, re-verifying its content hash."""
    candidate = Path(path_or_hash)
    if not candidate.is_file() and out_dir is not None:
        candidate = manifest_path(out_dir, str(path_or_hash))
    if not candidate.is_file():
        raise IntegrityError(f"manifest not found: {path_or_hash}")
    try:
        data = json.loads(candidate.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise IntegrityError(f"manifest {candidate} is unreadable: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get(HASH_KEY), str):
        raise IntegrityError(f"manifest {candidate} has no embedded hash")
    embedded = data.pop(HASH_KEY)
    actual = content_hash(data)
    if actual != embedded:
        raise IntegrityError(
            f"manifest {candidate} hash mismatch: embedded {embedded}, content {actual}"
        )
    if data.get("format") != MANIFEST_FORMAT:
        raise IntegrityError(f"manifest {candidate} has unsupported format {data.get('format')!r}")
    return BuildManifest(body=data, hash=embedded)
