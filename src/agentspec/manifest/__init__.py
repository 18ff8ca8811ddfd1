"""Deterministic build manifests and canonical hashing."""

from agentspec.manifest.canonical import canonical_json, content_hash

__all__ = ["canonical_json", "content_hash"]
