"""Spec documents: entity model, schemas and project loader."""

from agentspec.spec.loader import LoadedProject, load_project, parse_agent_spec
from agentspec.spec.types import SUPPORTED_MODELS, AgentSpec, LoopSpec, ToolEntry

__all__ = [
    "SUPPORTED_MODELS",
    "AgentSpec",
    "LoadedProject",
    "LoopSpec",
    "ToolEntry",
    "load_project",
    "parse_agent_spec",
]
