"""Canonical JSON utilities for deterministic manifest serialization.

The canonical form sorts keys recursively, uses tight separators and keeps
UTF-8 characters as-is, so the same logical data always produces identical
bytes and therefore identical hashes.

Usage:
    from agentspec.manifest.canonical import canonical_json, content_hash

    canonical_json({"z": 1, "a": 2})
    # '{"a":2,"z":1}'
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(obj: Any, *, indent: int | None = None) -> str:
    """Serialize object to canonical JSON.

    Args:
        obj: Any JSON-serializable Python object.
        indent: Optional indentation level. None for compact output.

    Raises:
        TypeError: If obj contains non-serializable values.
        ValueError: If obj contains NaN or infinite floats.
    """
    separators = (",", ": ") if indent is not None else (",", ":")
    return json.dumps(
        obj,
        sort_keys=True,
        separators=separators,
        ensure_ascii=False,
        indent=indent,
        allow_nan=False,
    )


def canonical_json_bytes(obj: Any) -> bytes:
    return canonical_json(obj).encode("utf-8")


def content_hash(obj: Any) -> str:
    """Full SHA-256 hex digest of the canonical JSON form of obj."""
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()


def integrity_value(obj: Any) -> str:
    """Integrity string in the lock-file format: sha256-<hex>."""
    return f"sha256-{content_hash(obj)}"


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
