"""Tool dispatch with authorization, audit and write stubbing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextvars import ContextVar
from typing import Any

from agentspec.config import Settings, get_settings
from agentspec.dispatch.audit import AuditTrail
from agentspec.dispatch.registry import ToolRegistry
from agentspec.errors import AuthorizationDenied, ToolError
from agentspec.ids import IdKind, new_id
from agentspec.policy.engine import Authorizer, Decision
from agentspec.policy.principals import parse_principal
from agentspec.spec.types import AGENT_TOOL_PREFIX, Access, Principal, Role

logger = logging.getLogger(__name__)

# agent name, arguments -> result; the reasoning loop itself lives outside this package
AgentRunner = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]

SIMULATED_RESULT: dict[str, Any] = {"ok": True, "simulated": True}
LIVE_ALL = "*"

_current_principal: ContextVar[Principal | None] = ContextVar("current_principal", default=None)
_current_deadline: ContextVar[float | None] = ContextVar("current_deadline", default=None)
_current_trace: ContextVar[str | None] = ContextVar("current_trace", default=None)


def current_principal() -> Principal | None:
    return _current_principal.get()


class Dispatcher:
    def __init__(
        self,
        authorizer: Authorizer,
        registry: ToolRegistry,
        *,
        agent_runner: AgentRunner | None = None,
        audit: AuditTrail | None = None,
        settings: Settings | None = None,
        live_write_tools: Iterable[str] | None = None,
    ) -> None:
        self.authorizer = authorizer
        self.registry = registry
        self.audit = audit or AuditTrail()
        self._agent_runner = agent_runner
        settings = settings or get_settings()
        live = set(settings.live_write_tool_set)
        if live_write_tools is not None:
            live.update(live_write_tools)
        self._live_write_tools = frozenset(live)

    def is_live(self, tool_ref: str) -> bool:
        return LIVE_ALL in self._live_write_tools or tool_ref in self._live_write_tools

    def _emit(
        self,
        event_type: str,
        *,
        trace_id: str,
        span_id: str,
        parent_span_id: str | None,
        actor_id: str,
        component: str,
        payload: dict[str, Any],
    ) -> None:
        self.audit.emit(
            trace_id=trace_id,
            span_id=span_id,
            parent_span_id=parent_span_id,
            event_type=event_type,
            component=component,
            actor_id=actor_id,
            payload=payload,
        )

    async def execute(
        self,
        principal: Principal | str,
        agent: str,
        tool_ref: str,
        access: Access,
        arguments: dict[str, Any],
        *,
        trace_id: str | None = None,
    ) -> dict[str, Any]:
        """Authorize and run one tool call on behalf of principal through agent."""
        if isinstance(principal, str):
            principal = parse_principal(principal)
        trace_id = trace_id or _current_trace.get() or new_id(IdKind.TRACE)
        span_id = new_id(IdKind.SPAN)
        actor = str(principal)

        def emit(event_type: str, payload: dict[str, Any], component: str = "dispatch") -> None:
            self._emit(
                event_type,
                trace_id=trace_id,
                span_id=new_id(IdKind.SPAN),
                parent_span_id=span_id,
                actor_id=actor,
                component=component,
                payload={"tool": tool_ref, "agent": agent, **payload},
            )

        self._emit(
            "tool.call.start",
            trace_id=trace_id,
            span_id=span_id,
            parent_span_id=None,
            actor_id=actor,
            component="dispatch",
            payload={
                "tool": tool_ref,
                "agent": agent,
                "access": str(access),
                "arguments": arguments,
            },
        )

        decision: Decision = self.authorizer.authorize_tool(principal, agent, tool_ref, access)
        emit(
            "policy.decision",
            {"allowed": decision.allowed, "check": decision.check, "reason": decision.reason},
            component="policy",
        )
        if not decision.allowed:
            denial = {"kind": "policy_deny", "check": decision.check, "reason": decision.reason}
            emit("tool.call.end", {"error": denial})
            logger.info("Denied %s -> %s via %s: %s", actor, tool_ref, agent, decision.reason)
            raise AuthorizationDenied(decision.check, decision.reason)

        # the manifest classification counts even when the handler registered as read
        writes = access is Access.WRITE or (
            self.authorizer.declared_access(agent, tool_ref) is Access.WRITE
        )

        def simulate() -> dict[str, Any]:
            emit(
                "tool.call.end",
                {"simulated": True, "arguments": arguments, "result": SIMULATED_RESULT},
            )
            logger.info("Simulated write tool %s for %s", tool_ref, actor)
            return dict(SIMULATED_RESULT)

        if tool_ref.startswith(AGENT_TOOL_PREFIX):
            if writes and not self.is_live(tool_ref):
                return simulate()
            target = tool_ref[len(AGENT_TOOL_PREFIX) :]
            token = _current_trace.set(trace_id)
            try:
                result = await self._run_agent(principal, target, arguments)
            except Exception as exc:
                emit("tool.call.end", {"error": {"kind": "agent_failed", "message": str(exc)}})
                raise
            finally:
                _current_trace.reset(token)
            emit("tool.call.end", {"result": result})
            return result

        tool = self.registry.get(tool_ref)
        if tool is None:
            emit("tool.call.end", {"error": {"kind": "unknown_tool", "message": tool_ref}})
            raise ToolError(f"no handler registered for {tool_ref}")

        if (writes or tool.writes) and not self.is_live(tool_ref):
            return simulate()

        try:
            result = await self._within_deadline(tool.handler(arguments))
        except Exception as exc:
            emit("tool.call.end", {"error": {"kind": "runtime_exception", "message": str(exc)}})
            raise
        emit("tool.call.end", {"result": result})
        return result

    async def invoke_agent(
        self,
        principal: Principal | str,
        agent: str,
        arguments: dict[str, Any],
        *,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        """Top-level agent invocation; requires the execute role on the agent."""
        if isinstance(principal, str):
            principal = parse_principal(principal)
        decision = self.authorizer.check_role(principal, "agent", agent, Role.EXECUTE)
        trace_id = new_id(IdKind.TRACE)
        self._emit(
            "policy.decision",
            trace_id=trace_id,
            span_id=new_id(IdKind.SPAN),
            parent_span_id=None,
            actor_id=str(principal),
            component="policy",
            payload={
                "agent": agent,
                "allowed": decision.allowed,
                "check": decision.check,
                "reason": decision.reason,
            },
        )
        decision.raise_for_denial()

        deadline = _current_deadline.get()
        if timeout_s is not None:
            own = asyncio.get_running_loop().time() + timeout_s
            deadline = own if deadline is None else min(deadline, own)
        deadline_token = _current_deadline.set(deadline)
        trace_token = _current_trace.set(trace_id)
        try:
            return await self._run_agent(principal, agent, arguments)
        finally:
            _current_trace.reset(trace_token)
            _current_deadline.reset(deadline_token)

    async def call_agent(
        self,
        caller: str,
        target: str,
        arguments: dict[str, Any],
        *,
        access: Access = Access.READ,
    ) -> dict[str, Any]:
        """Nested agent-to-agent call under the principal of the outermost request."""
        principal = _current_principal.get()
        if principal is None:
            raise ToolError("call_agent outside an agent invocation has no principal")
        return await self.execute(
            principal, caller, f"{AGENT_TOOL_PREFIX}{target}", access, arguments
        )

    async def _run_agent(
        self, principal: Principal, agent: str, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        if self._agent_runner is None:
            raise ToolError(f"no agent runner configured to execute {agent}")
        token = _current_principal.set(principal)
        try:
            return await self._within_deadline(self._agent_runner(agent, arguments))
        finally:
            _current_principal.reset(token)

    async def _within_deadline(self, work: Awaitable[dict[str, Any]]) -> dict[str, Any]:
        deadline = _current_deadline.get()
        if deadline is None:
            return await work
        async with asyncio.timeout_at(deadline):
            return await work
