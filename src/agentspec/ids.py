"""Prefixed identifiers for builds and audit records."""

from enum import StrEnum
from uuid import uuid4


class IdKind(StrEnum):
    BUILD = "bld"
    TRACE = "trc"
    SPAN = "spn"
    EVENT = "evt"


def new_id(kind: IdKind) -> str:
    return f"{kind}_{uuid4().hex}"
