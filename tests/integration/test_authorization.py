"""Authorization against a freshly built manifest."""

from __future__ import annotations

import itertools

import pytest

from agentspec.dispatch import Dispatcher, ToolRegistry
from agentspec.errors import AuthorizationDenied
from agentspec.manifest.builder import BuildManifest, build_manifest
from agentspec.policy import Authorizer, PolicyIndex
from agentspec.spec.types import Access
from agentspec.validate.pipeline import validate_project

READ_TOOL = "https://docs.example/mcp"
WRITE_TOOL = "https://tickets.example/mcp"
UNDECLARED = "https://admin.example/mcp"

AGENT = f"""
name: support
model: gemini-2.5-flash
description: Answers tickets.
tools:
  - server: {READ_TOOL}
    access: read
  - server: {WRITE_TOOL}
    access: write
acl:
  - principal: group:support
    role: execute
"""

PROJECT = f"""
tool_grants:
  - tool: {READ_TOOL}
    grants:
      - principal: user:reader
        access: read
      - principal: user:writer
        access: write
  - tool: {WRITE_TOOL}
    grants:
      - principal: user:reader
        access: read
      - principal: user:writer
        access: write
  - tool: {UNDECLARED}
    grants:
      - principal: user:writer
        access: write
"""

DECLARED = {READ_TOOL: Access.READ, WRITE_TOOL: Access.WRITE}
GRANTED = {"user:reader": Access.READ, "user:writer": Access.WRITE}


@pytest.fixture
def manifest(write_project) -> BuildManifest:
    root = write_project({"agents/support.yaml": AGENT, "project.yaml": PROJECT})
    return build_manifest(validate_project(root))


def test_tool_access_requires_capability_and_privilege(manifest) -> None:
    authorizer = Authorizer(PolicyIndex.from_manifest(manifest))
    principals = ["user:reader", "user:writer", "user:nobody"]
    for tool, who, access in itertools.product(
        [READ_TOOL, WRITE_TOOL, UNDECLARED], principals, list(Access)
    ):
        declared = DECLARED.get(tool)
        granted = GRANTED.get(who) if tool != UNDECLARED else None
        expected = (
            declared is not None
            and declared.satisfies(access)
            and granted is not None
            and granted.satisfies(access)
        )
        decision = authorizer.authorize_tool(who, "support", tool, access)
        assert decision.allowed is expected, (tool, who, access, decision.reason)
        if declared is None or not declared.satisfies(access):
            assert decision.check == "capability"
        elif not expected:
            assert decision.check == "privilege"


def test_capability_checked_before_privilege(manifest) -> None:
    authorizer = Authorizer(PolicyIndex.from_manifest(manifest))
    # writer holds write on the undeclared tool, but the agent never declared it
    decision = authorizer.authorize_tool("user:writer", "support", UNDECLARED, Access.WRITE)
    assert decision.reason.startswith("C1: capability.not_declared")


def test_group_membership_grants_execute(manifest) -> None:
    members = {"ana": ["support"]}
    authorizer = Authorizer(
        PolicyIndex.from_manifest(manifest),
        group_resolver=lambda user: members.get(user.id, []),
    )
    assert authorizer.authorize("user:ana", "agent:support", "execute")
    assert not authorizer.authorize("user:ben", "agent:support", "execute")


@pytest.mark.asyncio
async def test_dispatcher_enforces_manifest_policy(manifest) -> None:
    calls: list[dict] = []

    async def lookup(arguments: dict) -> dict:
        calls.append(arguments)
        return {"ok": True, "hits": 3}

    registry = ToolRegistry()
    registry.register(READ_TOOL, lookup)
    registry.register(WRITE_TOOL, lookup, access=Access.WRITE)
    dispatcher = Dispatcher(Authorizer(PolicyIndex.from_manifest(manifest)), registry)

    assert await dispatcher.execute("user:reader", "support", READ_TOOL, Access.READ, {"q": 1})
    stubbed = await dispatcher.execute("user:writer", "support", WRITE_TOOL, Access.WRITE, {})
    assert stubbed["simulated"] is True
    with pytest.raises(AuthorizationDenied):
        await dispatcher.execute("user:reader", "support", WRITE_TOOL, Access.WRITE, {})
    assert calls == [{"q": 1}]
    decisions = dispatcher.audit.of_type("policy.decision")
    assert [event.payload["allowed"] for event in decisions] == [True, True, False]
