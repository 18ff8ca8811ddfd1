import os
import textwrap
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest
from fakes import FakeFetcher, FakeProber

from agentspec.config import get_settings


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path):
    os.environ["APP_ENV"] = "dev"
    os.environ["LOG_LEVEL"] = "WARNING"
    os.environ["PROBE_TIMEOUT_SECONDS"] = "0.5"
    os.environ["PROBE_MAX_CONCURRENT"] = "4"
    os.environ["SKILL_FETCH_TIMEOUT_SECONDS"] = "0.5"
    os.environ["MANIFEST_DIR"] = str(tmp_path / "manifests")
    os.environ["LIVE_WRITE_TOOLS"] = ""
    os.environ["KNOWN_ENDPOINTS"] = ""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


ProjectWriter = Callable[..., Path]


@pytest.fixture
def write_project(tmp_path: Path) -> ProjectWriter:
    """Write a project tree under tmp_path/project from {relative path: yaml text}."""

    def _write(files: Mapping[str, str], name: str = "project") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return root

    return _write


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()
