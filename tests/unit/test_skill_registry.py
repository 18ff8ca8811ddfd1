import httpx
import pytest
from fakes import FakeFetcher, skill_payload

from agentspec.errors import SkillFetchError
from agentspec.manifest.canonical import integrity_value
from agentspec.skills.registry import HttpSkillFetcher, fetch_all, parse_skill_payload
from agentspec.spec.types import Access, SkillReference

REF = SkillReference.parse("skills.sh/acme/review@1.2")


def test_parse_payload() -> None:
    payload = skill_payload(
        "skills.sh/acme/review",
        "1.2",
        tools=[{"tool": "https://git.example/mcp", "access": "read"}],
        prompts=["Review carefully."],
    )
    bundle = parse_skill_payload(REF, payload)
    assert bundle.name == "skills.sh/acme/review"
    assert bundle.tools[0].ref == "https://git.example/mcp"
    assert bundle.tools[0].access is Access.READ
    assert bundle.prompts == ("Review carefully.",)
    assert bundle.integrity == integrity_value(payload)


def test_parse_payload_rejects_other_skill() -> None:
    with pytest.raises(ValueError, match="registry returned skill"):
        parse_skill_payload(REF, skill_payload("skills.sh/acme/other", "1.2"))
    with pytest.raises(ValueError, match="version 2.0"):
        parse_skill_payload(REF, skill_payload("skills.sh/acme/review", "2.0"))


def test_parse_payload_rejects_bad_tool_access() -> None:
    payload = skill_payload(
        "skills.sh/acme/review", "1.2", tools=[{"tool": "x", "access": "admin"}]
    )
    with pytest.raises(ValueError, match="malformed skill bundle: tools.0.access"):
        parse_skill_payload(REF, payload)


def test_url_for() -> None:
    assert HttpSkillFetcher().url_for(REF) == "https://skills.sh/api/skills/acme/review/1.2"
    mirror = HttpSkillFetcher("http://mirror.local/")
    assert mirror.url_for(REF) == "http://mirror.local/api/skills/acme/review/1.2"


@pytest.mark.asyncio
async def test_fetch_returns_json_payload() -> None:
    payload = skill_payload("skills.sh/acme/review", "1.2")
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
    async with httpx.AsyncClient(transport=transport) as client:
        fetched = await HttpSkillFetcher(client=client).fetch(REF)
    assert fetched == payload


@pytest.mark.asyncio
async def test_fetch_maps_http_errors() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(SkillFetchError, match="HTTP 404") as exc_info:
            await HttpSkillFetcher(client=client).fetch(REF)
    assert exc_info.value.retryable is False

    transport = httpx.MockTransport(lambda request: httpx.Response(502))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(SkillFetchError) as exc_info:
            await HttpSkillFetcher(client=client).fetch(REF)
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_fetch_rejects_non_object() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[1, 2]))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(SkillFetchError, match="non-object"):
            await HttpSkillFetcher(client=client).fetch(REF)


@pytest.mark.asyncio
async def test_fetch_all_returns_failures() -> None:
    good = skill_payload("skills.sh/acme/review", "1.2")
    fetcher = FakeFetcher({"skills.sh/acme/review@1.2": good})
    missing = SkillReference.parse("skills.sh/acme/gone@1.0")
    results = await fetch_all([REF, missing, REF], fetcher, timeout_s=1.0, max_concurrent=2)
    assert fetcher.calls.count("skills.sh/acme/review@1.2") == 1
    assert results["skills.sh/acme/review@1.2"] == good
    assert isinstance(results["skills.sh/acme/gone@1.0"], SkillFetchError)
