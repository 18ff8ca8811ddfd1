"""Skill bundles and the registry client."""

from agentspec.skills.registry import (
    HttpSkillFetcher,
    SkillBundle,
    SkillFetcher,
    SkillTool,
    fetch_all,
    parse_skill_payload,
)

__all__ = [
    "HttpSkillFetcher",
    "SkillBundle",
    "SkillFetcher",
    "SkillTool",
    "fetch_all",
    "parse_skill_payload",
]
