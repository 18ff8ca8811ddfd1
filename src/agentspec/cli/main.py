"""Click CLI group: build, validate and authorize commands."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from agentspec.build import build_project, resolve_out_dir
from agentspec.cli.report import format_report, report_json
from agentspec.config import Settings, get_settings, validate_settings_for_env
from agentspec.errors import AgentSpecError
from agentspec.logging import configure_logging
from agentspec.manifest.builder import load_manifest
from agentspec.policy.engine import Authorizer, PolicyIndex
from agentspec.policy.principals import parse_principal
from agentspec.spec.types import Access, Role, User
from agentspec.validate.issues import ValidationIssue


def _settings() -> Settings:
    settings = get_settings()
    try:
        validate_settings_for_env(settings)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    return settings


def _echo_report(issues: list[ValidationIssue], *, json_output: bool, **extra: object) -> None:
    if json_output:
        click.echo(report_json(issues, **extra))
    else:
        click.echo(format_report(issues, color=sys.stdout.isatty()))


@click.group()
@click.option("--log-level", type=str, default=None, help="Override LOG_LEVEL.")
def cli(log_level: str | None) -> None:
    """Validate agent spec projects and build deployable manifests."""
    configure_logging(log_level or get_settings().log_level)


root_argument = click.argument(
    "root",
    type=click.Path(path_type=Path, file_okay=False),
    default=".",
)
offline_option = click.option(
    "--offline", is_flag=True, help="Skip endpoint probes and skill fetches."
)
json_option = click.option("--json", "json_output", is_flag=True, help="Print the report as JSON.")


@cli.command()
@root_argument
@click.option(
    "--out",
    "out_dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Manifest directory (default: MANIFEST_DIR under ROOT).",
)
@offline_option
@json_option
def build(root: Path, out_dir: Path | None, offline: bool, json_output: bool) -> None:
    """Validate ROOT and write its manifest when there are no errors."""
    settings = _settings()
    outcome = asyncio.run(build_project(root, settings, offline=offline, out_dir=out_dir))
    manifest_hash = outcome.manifest.hash if outcome.manifest is not None else None
    path = str(outcome.path) if outcome.path is not None else None
    _echo_report(
        outcome.result.issues, json_output=json_output, hash=manifest_hash, manifest=path
    )
    if not outcome.success:
        sys.exit(1)
    if not json_output:
        click.echo(f"manifest: {manifest_hash}")
        click.echo(f"written: {path}")


@cli.command()
@root_argument
@offline_option
@json_option
def validate(root: Path, offline: bool, json_output: bool) -> None:
    """Validate ROOT and print the report without writing a manifest."""
    settings = _settings()
    outcome = asyncio.run(build_project(root, settings, offline=offline, write=False))
    _echo_report(outcome.result.issues, json_output=json_output)
    if not outcome.success:
        sys.exit(1)


@cli.command()
@click.option(
    "--manifest",
    "manifest_ref",
    required=True,
    help="Manifest file path, or a hash looked up in MANIFEST_DIR under --root.",
)
@click.option(
    "--root",
    type=click.Path(path_type=Path, file_okay=False),
    default=".",
    help="Project root a relative MANIFEST_DIR is resolved against.",
)
@click.option(
    "--principal", required=True, help="user:<id>, group:<name> or serviceaccount:<name>."
)
@click.option("--agent", type=str, default=None)
@click.option("--loop", type=str, default=None, help="Check a loop ACL instead of an agent.")
@click.option("--tool", type=str, default=None, help="Tool ref to authorize through --agent.")
@click.option("--access", type=click.Choice([a.value for a in Access]), default=None)
@click.option("--role", type=click.Choice([r.value for r in Role]), default=None)
@click.option("--group", "groups", multiple=True, help="Group membership of a user principal.")
def authorize(
    manifest_ref: str,
    root: Path,
    principal: str,
    agent: str | None,
    loop: str | None,
    tool: str | None,
    access: str | None,
    role: str | None,
    groups: tuple[str, ...],
) -> None:
    """Print allowed or the failing check for one request against a manifest."""
    if (agent is None) == (loop is None):
        raise click.UsageError("pass exactly one of --agent or --loop")
    if (tool is None) == (role is None):
        raise click.UsageError("pass either --tool with --access, or --role")
    if tool is not None and (access is None or agent is None):
        raise click.UsageError("--tool needs --agent and --access")

    settings = _settings()
    try:
        manifest = load_manifest(manifest_ref, resolve_out_dir(root, None, settings))
        who = parse_principal(principal)
    except AgentSpecError as exc:
        raise click.ClickException(str(exc)) from exc

    def resolve_groups(user: User) -> tuple[str, ...]:
        return groups

    authorizer = Authorizer(PolicyIndex.from_manifest(manifest), group_resolver=resolve_groups)
    if tool is not None:
        assert agent is not None and access is not None
        decision = authorizer.authorize_tool(who, agent, tool, Access(access))
    elif agent is not None:
        decision = authorizer.check_role(who, "agent", agent, Role(role))
    else:
        assert loop is not None
        decision = authorizer.check_role(who, "loop", loop, Role(role))
    click.echo(decision.describe())
    if not decision.allowed:
        sys.exit(1)
