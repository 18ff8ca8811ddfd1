"""End-to-end build: load, validate, emit a content-addressed manifest."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from agentspec.config import Settings, get_settings
from agentspec.manifest.builder import BuildManifest, build_manifest, write_manifest
from agentspec.skills.registry import HttpSkillFetcher, SkillFetcher
from agentspec.spec.loader import load_project
from agentspec.validate.pipeline import PipelineResult, run_pipeline
from agentspec.validate.probes import EndpointProber, Prober

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildOutcome:
    result: PipelineResult
    manifest: BuildManifest | None = None
    path: Path | None = None

    @property
    def success(self) -> bool:
        return self.result.success


def network_clients(
    settings: Settings,
    prober: Prober | None = None,
    fetcher: SkillFetcher | None = None,
) -> tuple[Prober, SkillFetcher]:
    """Fill in the real HTTP prober and skill fetcher for whichever client is missing."""
    if fetcher is None:
        fetcher = HttpSkillFetcher(
            settings.skill_registry_url, timeout_s=settings.skill_fetch_timeout_seconds
        )
    return prober or EndpointProber(), fetcher


def resolve_out_dir(root: Path, out_dir: Path | None, settings: Settings) -> Path:
    if out_dir is not None:
        return out_dir
    configured = Path(settings.manifest_dir)
    return configured if configured.is_absolute() else root / configured


async def build_project(
    root: Path,
    settings: Settings | None = None,
    *,
    prober: Prober | None = None,
    fetcher: SkillFetcher | None = None,
    offline: bool = False,
    out_dir: Path | None = None,
    write: bool = True,
) -> BuildOutcome:
    """Validate root and, when no errors were found, build and store its manifest.

    Probes and skill fetches use the real network clients unless ``offline`` is
    set. An offline run that needs a manifest fails on any skill it could not
    verify; a report-only run (``write=False``) only warns.
    """
    settings = settings or get_settings()
    if offline:
        prober, fetcher = None, None
    else:
        prober, fetcher = network_clients(settings, prober, fetcher)
    result = await run_pipeline(
        load_project(root),
        settings,
        prober=prober,
        fetcher=fetcher,
        require_verified_skills=write,
    )
    outcome = BuildOutcome(result=result)
    if not result.success:
        logger.info("Build of %s blocked by %d error(s)", root, result.error_count)
        return outcome
    if result.unverified_skills:
        logger.info("No manifest for %s: skills not verified (offline)", root)
        return outcome
    outcome.manifest = build_manifest(result)
    if write:
        outcome.path = write_manifest(outcome.manifest, resolve_out_dir(root, out_dir, settings))
    return outcome
