"""End-to-end builds: validation gating, manifests and rollback by hash."""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeFetcher, FakeProber, lock_text, skill_payload

from agentspec.build import build_project, network_clients
from agentspec.config import get_settings
from agentspec.errors import BuildError
from agentspec.manifest.builder import build_manifest, load_manifest
from agentspec.skills.registry import HttpSkillFetcher
from agentspec.validate.issues import IssueKind, Severity
from agentspec.validate.probes import EndpointProber

REVIEW = skill_payload(
    "skills.sh/acme/review",
    "1.2",
    tools=[{"tool": "https://git.example/mcp", "access": "read"}],
    prompts=["Always cite the changed lines."],
)

PLANNER = """
name: planner
model: gemini-2.5-pro
description: Plans the work.
tools:
  - server: https://git.example/mcp
    access: read
    credential: git-token
  - server: agent:researcher
    access: read
  - name: fmt
    access: write
skills:
  - skills.sh/acme/review@1.2
acl:
  - principal: group:eng
    role: execute
"""

RESEARCHER = """
name: researcher
model: gemini-2.5-flash
description: Finds things.
acl:
  - principal: group:eng
    role: execute
  - principal: serviceaccount:nightly-bot
    role: execute
"""

NIGHTLY = """
name: nightly
schedule: "0 3 * * 1-5"
agent: researcher
run_as: nightly-bot
instruction: Summarize yesterday's merges.
acl:
  - principal: group:eng
    role: read
"""

PROJECT = """
service_accounts:
  - name: nightly-bot
credentials:
  - name: git-token
    type: bearer
tool_grants:
  - tool: https://git.example/mcp
    grants:
      - principal: group:eng
        access: read
"""


def full_project() -> dict[str, str]:
    return {
        "agents/planner.yaml": PLANNER,
        "agents/researcher.yaml": RESEARCHER,
        "loops/nightly.yaml": NIGHTLY,
        "project.yaml": PROJECT,
        "skills.lock": lock_text(REVIEW),
        "tools/fmt.py": "def run(text: str = '') -> dict:\n    return {'text': text.strip()}\n",
    }


def online() -> dict:
    return {
        "prober": FakeProber(reachable={"https://git.example/mcp"}),
        "fetcher": FakeFetcher({"skills.sh/acme/review@1.2": REVIEW}),
    }


@pytest.mark.asyncio
async def test_full_project_builds(write_project, tmp_path: Path) -> None:
    root = write_project(full_project())
    outcome = await build_project(root, **online())
    assert outcome.result.issues == []
    assert outcome.manifest is not None
    assert outcome.path == tmp_path / "manifests" / f"{outcome.manifest.hash}.json"

    planner = outcome.manifest.agents[0]
    assert planner["name"] == "planner"
    assert planner["instruction"] == "Plans the work.\n\nAlways cite the changed lines."
    assert planner["skills"][0]["integrity"].startswith("sha256-")
    assert planner["skill_tools"] == [{"ref": "https://git.example/mcp", "access": "read"}]
    assert outcome.manifest.loops[0]["schedule_normalized"] == "0 3 * * 1-5"
    assert outcome.manifest.body["local_tools"][0]["ref"] == "local:fmt"
    assert outcome.manifest.body["skills"][0]["prompts"] == ["Always cite the changed lines."]


@pytest.mark.asyncio
async def test_offline_build_refuses_unverified_skills(write_project, tmp_path: Path) -> None:
    root = write_project(full_project())
    outcome = await build_project(root, offline=True)
    assert not outcome.success
    assert outcome.manifest is None
    assert not (tmp_path / "manifests").exists()
    errors = [issue for issue in outcome.result.issues if issue.is_error]
    assert [(issue.kind, issue.file) for issue in errors] == [
        (IssueKind.INTEGRITY, "agents/planner.yaml")
    ]
    assert "(offline)" in errors[0].message
    assert errors[0].suggestion is not None and "--offline" in errors[0].suggestion


@pytest.mark.asyncio
async def test_offline_validation_only_warns(write_project) -> None:
    root = write_project(full_project())
    outcome = await build_project(root, offline=True, write=False)
    assert outcome.success
    kinds = sorted(issue.kind for issue in outcome.result.issues)
    assert kinds == [IssueKind.INTEGRITY, IssueKind.REACHABILITY]
    assert all(issue.severity is Severity.WARNING for issue in outcome.result.issues)
    assert outcome.manifest is None
    assert outcome.result.unverified_skills == ["skills.sh/acme/review@1.2"]
    with pytest.raises(BuildError, match="not verified against the lock"):
        build_manifest(outcome.result)


def test_network_clients_fill_only_missing_clients() -> None:
    fake = FakeProber()
    prober, fetcher = network_clients(get_settings(), prober=fake)
    assert prober is fake
    assert isinstance(fetcher, HttpSkillFetcher)
    prober, _ = network_clients(get_settings())
    assert isinstance(prober, EndpointProber)


@pytest.mark.asyncio
async def test_unknown_model_blocks_build(write_project, tmp_path: Path) -> None:
    root = write_project(
        {
            "agents/helper.yaml": "name: helper\ndescription: test\nmodel: gpt-5\n",
            "project.yaml": "{}\n",
        }
    )
    outcome = await build_project(root, offline=True)
    assert not outcome.success
    assert outcome.manifest is None
    assert not (tmp_path / "manifests").exists()
    errors = [issue for issue in outcome.result.issues if issue.is_error]
    assert len(errors) == 1
    assert (errors[0].file, errors[0].line, errors[0].kind) == (
        "agents/helper.yaml",
        3,
        IssueKind.SCHEMA,
    )
    assert errors[0].message == (
        'Unknown model "gpt-5". Supported: gemini-2.5-flash, gemini-2.5-pro, '
        "gemini-3-flash-preview"
    )


@pytest.mark.asyncio
async def test_every_stage_reports_in_one_build(write_project) -> None:
    files = full_project()
    files["agents/planner.yaml"] = PLANNER.replace("gemini-2.5-pro", "gpt-5").replace(
        "name: fmt", "name: missing-tool"
    )
    files["loops/nightly.yaml"] = NIGHTLY.replace("agent: researcher", "agent: reseacher")
    files["project.yaml"] = PROJECT.replace("group:eng", "grp:eng")
    root = write_project(files)
    outcome = await build_project(root, **online())
    kinds = {issue.kind for issue in outcome.result.issues if issue.is_error}
    assert kinds == {
        IssueKind.SCHEMA,
        IssueKind.REFERENCE,
        IssueKind.ACL_FORMAT,
    }
    stages = {issue.stage for issue in outcome.result.issues}
    assert {"models", "tools", "references", "acl"} <= stages


@pytest.mark.asyncio
async def test_agent_cycle_blocks_build(write_project) -> None:
    def agent(name: str, target: str) -> str:
        return (
            f"name: {name}\nmodel: gemini-2.5-flash\ndescription: d\n"
            f"tools:\n  - server: agent:{target}\n    access: read\n"
            "acl:\n  - principal: user:alice\n    role: execute\n"
        )

    root = write_project(
        {"agents/x.yaml": agent("x", "y"), "agents/y.yaml": agent("y", "x"), "project.yaml": "{}"}
    )
    outcome = await build_project(root, offline=True)
    assert outcome.manifest is None
    cycles = [issue for issue in outcome.result.issues if issue.kind is IssueKind.CYCLE]
    assert [issue.message for issue in cycles] == ["agent call cycle: x -> y -> x"]


@pytest.mark.asyncio
async def test_warnings_do_not_block(write_project) -> None:
    root = write_project(
        {"agents/a.yaml": "name: a\nmodel: gemini-2.5-flash\ndescription: d\n"}
    )
    outcome = await build_project(root, offline=True)
    assert outcome.success
    assert outcome.result.warning_count == 2
    assert outcome.path is not None and outcome.path.is_file()


@pytest.mark.asyncio
async def test_hash_changes_and_reverts(write_project, tmp_path: Path) -> None:
    root = write_project(full_project())
    first = await build_project(root, **online())
    (root / "agents/researcher.yaml").write_text(
        RESEARCHER.replace("Finds things.", "Finds everything."), encoding="utf-8"
    )
    second = await build_project(root, **online())
    (root / "agents/researcher.yaml").write_text(RESEARCHER, encoding="utf-8")
    third = await build_project(root, **online())

    assert first.manifest is not None and second.manifest is not None
    assert third.manifest is not None
    assert first.manifest.hash != second.manifest.hash
    assert third.manifest.hash == first.manifest.hash
    assert third.path == first.path

    out = tmp_path / "manifests"
    assert len(list(out.glob("*.json"))) == 2
    rollback = load_manifest(first.manifest.hash, out)
    assert rollback.agents[1]["description"] == "Finds things."


@pytest.mark.asyncio
async def test_same_sources_same_hash_in_any_directory(write_project) -> None:
    one = write_project(full_project(), name="one")
    two = write_project(full_project(), name="two")
    first = await build_project(one, **online(), write=False)
    second = await build_project(two, **online(), write=False)
    assert first.manifest is not None and second.manifest is not None
    assert first.manifest.hash == second.manifest.hash
    assert first.path is None
