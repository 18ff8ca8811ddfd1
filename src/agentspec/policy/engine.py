"""Two-step tool authorization (capability AND privilege) plus role checks.

All lookups run against an immutable index built from a manifest, so one
Authorizer can serve concurrent requests.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from agentspec.errors import AuthorizationDenied
from agentspec.policy.principals import parse_principal
from agentspec.spec.types import AGENT_TOOL_PREFIX, Access, Principal, Role, User

if TYPE_CHECKING:
    from agentspec.manifest.builder import BuildManifest

CheckName = Literal["capability", "privilege", "role"]
TargetKind = Literal["agent", "loop"]

# user -> group names the user belongs to
GroupResolver = Callable[[User], Iterable[str]]
# tool ref -> extra (principal, access) grants from an external store
GrantSource = Callable[[str], Iterable[tuple[str, Access]]]


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    check: CheckName
    reason: str

    def __bool__(self) -> bool:
        return self.allowed

    def raise_for_denial(self) -> None:
        if not self.allowed:
            raise AuthorizationDenied(self.check, self.reason)

    def describe(self) -> str:
        return "allowed" if self.allowed else f"denied ({self.check}): {self.reason}"


AclIndex = Mapping[str, tuple[tuple[str, Role], ...] | None]


@dataclass(frozen=True, slots=True)
class PolicyIndex:
    agent_tools: Mapping[str, Mapping[str, Access]]
    agent_acls: AclIndex
    loop_acls: AclIndex
    grants: Mapping[str, tuple[tuple[str, Access], ...]]

    @classmethod
    def from_manifest(cls, manifest: BuildManifest | Mapping[str, Any]) -> PolicyIndex:
        body = manifest.body if hasattr(manifest, "body") else manifest
        agent_tools = {
            agent["name"]: MappingProxyType(
                {tool["ref"]: Access(tool["access"]) for tool in agent.get("tools", [])}
            )
            for agent in body.get("agents", [])
        }
        grants: dict[str, list[tuple[str, Access]]] = {}
        for grant in body.get("tool_grants", []):
            bucket = grants.setdefault(grant["tool"], [])
            bucket += [(item["principal"], Access(item["access"])) for item in grant["grants"]]
        return cls(
            agent_tools=MappingProxyType(agent_tools),
            agent_acls=_acl_index(body.get("agents", [])),
            loop_acls=_acl_index(body.get("loops", [])),
            grants=MappingProxyType({tool: tuple(items) for tool, items in grants.items()}),
        )


def _acl_index(records: Iterable[Mapping[str, Any]]) -> AclIndex:
    index: dict[str, tuple[tuple[str, Role], ...] | None] = {}
    for record in records:
        acl = record.get("acl")
        index[record["name"]] = (
            None
            if acl is None
            else tuple((entry["principal"], Role(entry["role"])) for entry in acl)
        )
    return MappingProxyType(index)


class Authorizer:
    def __init__(
        self,
        index: PolicyIndex,
        group_resolver: GroupResolver | None = None,
        grant_source: GrantSource | None = None,
    ) -> None:
        self.index = index
        self._group_resolver = group_resolver
        self._grant_source = grant_source

    def identities(self, principal: Principal) -> frozenset[str]:
        """Principal strings a request matches: itself plus, for users, its groups."""
        found = {str(principal)}
        if isinstance(principal, User) and self._group_resolver is not None:
            found.update(f"group:{name}" for name in self._group_resolver(principal))
        return frozenset(found)

    def declared_access(self, agent: str, tool_ref: str) -> Access | None:
        return self.index.agent_tools.get(agent, {}).get(tool_ref)

    def check_capability(self, agent: str, tool_ref: str, access: Access) -> Decision:
        declared = self.declared_access(agent, tool_ref)
        if declared is None:
            return Decision(
                False,
                "capability",
                f"C1: capability.not_declared: agent {agent} does not declare {tool_ref}",
            )
        if not declared.satisfies(access):
            return Decision(
                False,
                "capability",
                f"C2: capability.read_only: agent {agent} declares {tool_ref} "
                f"with {declared} access, {access} requested",
            )
        return Decision(True, "capability", f"agent {agent} declares {tool_ref} ({declared})")

    def _grants_for(self, tool_ref: str) -> list[tuple[str, Access]]:
        grants = list(self.index.grants.get(tool_ref, ()))
        if self._grant_source is not None:
            grants += list(self._grant_source(tool_ref))
        return grants

    def check_privilege(
        self, principal: Principal | str, tool_ref: str, access: Access
    ) -> Decision:
        principal = _as_principal(principal)
        identities = self.identities(principal)
        held = [level for who, level in self._grants_for(tool_ref) if who in identities]
        if not held:
            return Decision(
                False,
                "privilege",
                f"P1: privilege.no_grant: {principal} holds no grant on {tool_ref}",
            )
        best = max(held, key=lambda level: level.rank)
        if not best.satisfies(access):
            return Decision(
                False,
                "privilege",
                f"P2: privilege.insufficient_access: {principal} holds {best} "
                f"on {tool_ref}, {access} requested",
            )
        return Decision(True, "privilege", f"{principal} holds {best} on {tool_ref}")

    def check_role(
        self, principal: Principal | str, target_kind: TargetKind, name: str, role: Role
    ) -> Decision:
        principal = _as_principal(principal)
        acls = self.index.agent_acls if target_kind == "agent" else self.index.loop_acls
        acl = acls.get(name)
        if not acl:
            return Decision(
                False, "role", f"A1: role.no_acl: {target_kind} {name} has no acl entries"
            )
        identities = self.identities(principal)
        for who, held in acl:
            if who in identities and held.satisfies(role):
                return Decision(True, "role", f"{principal} holds {held} on {target_kind} {name}")
        return Decision(
            False,
            "role",
            f"A2: role.missing: {principal} lacks {role} on {target_kind} {name}",
        )

    def authorize_tool(
        self, principal: Principal | str, agent: str, tool_ref: str, access: Access
    ) -> Decision:
        """Capability then privilege; both must allow and the first denial is returned.

        Agent tools additionally need the execute role on the target agent.
        """
        capability = self.check_capability(agent, tool_ref, access)
        if not capability:
            return capability
        privilege = self.check_privilege(principal, tool_ref, access)
        if not privilege or not tool_ref.startswith(AGENT_TOOL_PREFIX):
            return privilege
        target = tool_ref[len(AGENT_TOOL_PREFIX) :]
        return self.check_role(principal, "agent", target, Role.EXECUTE)

    def authorize(self, principal: Principal | str, resource: str, access: str) -> Decision:
        """Generic entry point.

        ``resource`` is ``agent:<name>`` or ``loop:<name>`` (access is a role) or
        ``tool:<agent>:<tool ref>`` (access is read or write).
        """
        kind, _, rest = resource.partition(":")
        match kind:
            case "agent" | "loop":
                return self.check_role(principal, kind, rest, Role(access))
            case "tool":
                agent, _, tool_ref = rest.partition(":")
                return self.authorize_tool(principal, agent, tool_ref, Access(access))
        raise ValueError(f"unknown resource kind in {resource!r}")


def _as_principal(principal: Principal | str) -> Principal:
    return parse_principal(principal) if isinstance(principal, str) else principal
