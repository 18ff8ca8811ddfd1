"""Reference dispatcher enforcing authorization at tool-call time."""

from agentspec.dispatch.audit import AuditEvent, AuditTrail, redact_payload
from agentspec.dispatch.registry import ToolDef, ToolRegistry
from agentspec.dispatch.runtime import Dispatcher, current_principal

__all__ = [
    "AuditEvent",
    "AuditTrail",
    "Dispatcher",
    "ToolDef",
    "ToolRegistry",
    "current_principal",
    "redact_payload",
]
