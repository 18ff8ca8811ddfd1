"""Application configuration contract."""

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="APP_ENV", default="dev")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")

    probe_timeout_seconds: float = Field(alias="PROBE_TIMEOUT_SECONDS", default=5.0)
    probe_max_concurrent: int = Field(alias="PROBE_MAX_CONCURRENT", default=8)
    known_endpoints: str = Field(alias="KNOWN_ENDPOINTS", default="")

    skill_registry_url: str = Field(alias="SKILL_REGISTRY_URL", default="https://skills.sh")
    skill_fetch_timeout_seconds: float = Field(alias="SKILL_FETCH_TIMEOUT_SECONDS", default=10.0)
    skill_fetch_max_concurrent: int = Field(alias="SKILL_FETCH_MAX_CONCURRENT", default=4)

    manifest_dir: str = Field(alias="MANIFEST_DIR", default=".agentspec/manifests")

    # Comma-separated tool refs executed for real even when write-classified; "*" for all.
    live_write_tools: str = Field(alias="LIVE_WRITE_TOOLS", default="")

    @property
    def known_endpoint_list(self) -> tuple[str, ...]:
        return _split_csv(self.known_endpoints)

    @property
    def live_write_tool_set(self) -> frozenset[str]:
        return frozenset(_split_csv(self.live_write_tools))


def validate_settings_for_env(settings: Settings) -> None:
    problems: list[str] = []
    if settings.probe_timeout_seconds <= 0:
        problems.append("PROBE_TIMEOUT_SECONDS(must be > 0)")
    if settings.probe_max_concurrent < 1:
        problems.append("PROBE_MAX_CONCURRENT(must be >= 1)")
    if settings.skill_fetch_timeout_seconds <= 0:
        problems.append("SKILL_FETCH_TIMEOUT_SECONDS(must be > 0)")
    if settings.skill_fetch_max_concurrent < 1:
        problems.append("SKILL_FETCH_MAX_CONCURRENT(must be >= 1)")
    if not settings.manifest_dir.strip():
        problems.append("MANIFEST_DIR")

    if settings.app_env == "prod" and "*" in settings.live_write_tool_set:
        msg = (
            "SECURITY WARNING: LIVE_WRITE_TOOLS=* in production. "
            "Every write-classified tool will perform real side effects."
        )
        logger.warning(msg)
        problems.append("LIVE_WRITE_TOOLS(global override not allowed in prod)")

    if problems:
        keys = ", ".join(sorted(set(problems)))
        raise ValueError(f"invalid configuration: {keys}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
