"""Skill registry client and bundle model."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from agentspec.errors import SkillFetchError
from agentspec.manifest.canonical import integrity_value
from agentspec.spec.types import Access, SkillReference

logger = logging.getLogger(__name__)


class _SkillToolDoc(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    tool: str = Field(min_length=1)
    access: Literal["read", "write"]


class _SkillPayloadDoc(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str | None = None
    version: str | None = None
    tools: list[_SkillToolDoc] = Field(default_factory=list)
    prompts: list[str] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SkillTool:
    ref: str
    access: Access


@dataclass(frozen=True, slots=True)
class SkillBundle:
    name: str
    version: str
    integrity: str
    tools: tuple[SkillTool, ...] = ()
    prompts: tuple[str, ...] = ()


def parse_skill_payload(ref: SkillReference, payload: Mapping[str, Any]) -> SkillBundle:
    """Validate a fetched payload; raises ValueError when it does not describe ref."""
    try:
        doc = _SkillPayloadDoc.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "(root)"
        raise ValueError(f"malformed skill bundle: {where}: {first['msg']}") from exc
    if doc.name is not None and doc.name != ref.name:
        raise ValueError(f"registry returned skill {doc.name} for {ref.name}")
    if doc.version is not None and doc.version != ref.version:
        raise ValueError(f"registry returned version {doc.version} for {ref}")
    return SkillBundle(
        name=ref.name,
        version=ref.version,
        integrity=integrity_value(dict(payload)),
        tools=tuple(SkillTool(ref=item.tool, access=Access(item.access)) for item in doc.tools),
        prompts=tuple(doc.prompts),
    )


class SkillFetcher(Protocol):
    async def fetch(self, ref: SkillReference) -> Mapping[str, Any]: ...


class HttpSkillFetcher:
    """Fetches skill bundles as JSON from the registry named by the reference.

    A reference ``skills.sh/acme/review@1.2`` resolves to
    ``https://skills.sh/api/skills/acme/review/1.2``; ``base_url`` replaces the
    scheme and host for every registry (mirrors, tests).
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._client = client

    def url_for(self, ref: SkillReference) -> str:
        registry, _, path = ref.name.partition("/")
        base = self._base_url or f"https://{registry}"
        return f"{base}/api/skills/{path}/{ref.version}"

    async def fetch(self, ref: SkillReference) -> Mapping[str, Any]:
        url = self.url_for(ref)
        try:
            if self._client is not None:
                resp = await self._client.get(url, timeout=self._timeout_s)
            else:
                async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                    resp = await client.get(url)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise SkillFetchError(
                f"registry answered HTTP {exc.response.status_code} for {ref}",
                retryable=exc.response.status_code >= 500,
            ) from exc
        except httpx.HTTPError as exc:
            raise SkillFetchError(f"cannot reach registry for {ref}: {exc}") from exc
        except ValueError as exc:
            msg = f"registry returned invalid JSON for {ref}"
            raise SkillFetchError(msg, retryable=False) from exc
        if not isinstance(payload, dict):
            msg = f"registry returned a non-object payload for {ref}"
            raise SkillFetchError(msg, retryable=False)
        return payload


async def fetch_all(
    refs: Iterable[SkillReference],
    fetcher: SkillFetcher,
    *,
    timeout_s: float,
    max_concurrent: int,
) -> dict[str, Mapping[str, Any] | Exception]:
    """Fetch every reference concurrently; failures are returned, never raised."""
    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def one(ref: SkillReference) -> Mapping[str, Any] | Exception:
        async with semaphore:
            try:
                return await asyncio.wait_for(fetcher.fetch(ref), timeout=timeout_s)
            except TimeoutError:
                return SkillFetchError(f"fetching {ref} timed out after {timeout_s:g}s")
            except Exception as exc:
                logger.debug("Skill fetch failed for %s", ref, exc_info=True)
                return exc

    unique = {str(ref): ref for ref in refs}
    results = await asyncio.gather(*(one(ref) for ref in unique.values()))
    return dict(zip(unique, results, strict=True))
