"""Fakes for network collaborators and skill fixtures shared by tests."""

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from agentspec.config import get_settings
from agentspec.errors import SkillFetchError
from agentspec.graph.builder import build_graph
from agentspec.manifest.canonical import integrity_value
from agentspec.skills.registry import SkillFetcher
from agentspec.spec.loader import load_project
from agentspec.spec.types import SkillReference
from agentspec.validate.context import BuildContext
from agentspec.validate.issues import IssueCollector, ValidationIssue
from agentspec.validate.probes import Prober, ProbeResult
from agentspec.validate.stages import Stage


class FakeProber:
    """Answers from a fixed table; unknown URLs are unreachable."""

    def __init__(self, reachable: set[str] | None = None, delay_s: float = 0.0) -> None:
        self.reachable = reachable or set()
        self.delay_s = delay_s
        self.calls: list[str] = []

    async def probe(self, url: str, timeout_s: float) -> ProbeResult:
        self.calls.append(url)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if url in self.reachable:
            return ProbeResult(url=url, reachable=True, message="HTTP 200")
        return ProbeResult(
            url=url,
            reachable=False,
            message="[connection_refused] refused",
            kind="connection_refused",
        )


class FakeFetcher:
    """Serves skill payloads keyed by "<name>@<version>"."""

    def __init__(self, payloads: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self.payloads = dict(payloads or {})
        self.calls: list[str] = []

    async def fetch(self, ref: SkillReference) -> Mapping[str, Any]:
        self.calls.append(str(ref))
        try:
            return self.payloads[str(ref)]
        except KeyError:
            msg = f"registry answered HTTP 404 for {ref}"
            raise SkillFetchError(msg, retryable=False) from None


def skill_payload(
    name: str,
    version: str,
    *,
    tools: list[dict[str, str]] | None = None,
    prompts: list[str] | None = None,
) -> dict[str, Any]:
    return {"name": name, "version": version, "tools": tools or [], "prompts": prompts or []}


def lock_text(*payloads: Mapping[str, Any]) -> str:
    lines = ["skills:"]
    for payload in payloads:
        lines += [
            f"  - name: {payload['name']}",
            f"    version: \"{payload['version']}\"",
            f"    integrity: {integrity_value(dict(payload))}",
        ]
    return "\n".join(lines) + "\n"


async def run_stage(
    root: Path,
    stage: Stage,
    *,
    prober: Prober | None = None,
    fetcher: SkillFetcher | None = None,
    before: tuple[Stage, ...] = (),
) -> tuple[BuildContext, list[ValidationIssue]]:
    """Run one stage (after any prerequisite stages) against the project at root."""
    graph = build_graph(load_project(root))
    ctx = BuildContext(graph=graph, settings=get_settings(), prober=prober, fetcher=fetcher)
    collector = IssueCollector("test")
    for earlier in before:
        await earlier(ctx, IssueCollector("prerequisite"))
    await stage(ctx, collector)
    return ctx, collector.issues
