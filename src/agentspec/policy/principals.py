"""Principal string parsing."""

from __future__ import annotations

from agentspec.errors import AclFormatError
from agentspec.spec.types import Group, Principal, ServiceAccountPrincipal, User
from agentspec.validate.suggest import closest

PREFIXES = ("user", "group", "serviceaccount")


def parse_principal(text: str) -> Principal:
    """Parse user:<id>, group:<name> or serviceaccount:<name>."""
    raw = text.strip()
    prefix, sep, value = raw.partition(":")
    if not sep:
        raise AclFormatError(
            f'malformed principal "{text}": expected <kind>:<name>',
            suggestion=f"prefix it with one of {', '.join(p + ':' for p in PREFIXES)}",
        )
    if prefix not in PREFIXES:
        match = closest(prefix.lower(), PREFIXES)
        raise AclFormatError(
            f'malformed principal "{text}": unknown principal kind "{prefix}"',
            suggestion=f'did you mean "{match}:{value}"?' if match else None,
        )
    if not value or any(ch.isspace() for ch in value):
        raise AclFormatError(f'malformed principal "{text}": {prefix} name must be non-empty')
    match prefix:
        case "user":
            return User(value)
        case "group":
            return Group(value)
        case _:
            return ServiceAccountPrincipal(value)
