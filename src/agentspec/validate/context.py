"""Shared state threaded through the validation stages of one build."""

from __future__ import annotations

from dataclasses import dataclass, field

from agentspec.config import Settings
from agentspec.graph.builder import ReferenceGraph
from agentspec.skills.registry import SkillBundle, SkillFetcher, SkillTool
from agentspec.validate.artifacts import BundledTool
from agentspec.validate.probes import Prober, ProbeResult


@dataclass(slots=True)
class BuildContext:
    graph: ReferenceGraph
    settings: Settings
    prober: Prober | None = None
    fetcher: SkillFetcher | None = None
    # skills left unverified are errors instead of warnings
    require_verified_skills: bool = False

    probes: dict[str, ProbeResult] = field(default_factory=dict)
    # skill reference string -> bundle, only for fetched and verified skills
    resolved_skills: dict[str, SkillBundle] = field(default_factory=dict)
    # agent name -> skill tools that survived the allowlist check
    skill_tools: dict[str, tuple[SkillTool, ...]] = field(default_factory=dict)
    bundled_tools: dict[str, BundledTool] = field(default_factory=dict)
    instructions: dict[str, str] = field(default_factory=dict)

    @property
    def offline(self) -> bool:
        return self.prober is None

    @property
    def reachable_urls(self) -> tuple[str, ...]:
        return tuple(url for url, result in self.probes.items() if result.reachable)
