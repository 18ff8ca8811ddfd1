"""Capability, privilege and role checks."""

from agentspec.policy.engine import Authorizer, Decision, PolicyIndex
from agentspec.policy.principals import parse_principal

__all__ = ["Authorizer", "Decision", "PolicyIndex", "parse_principal"]
