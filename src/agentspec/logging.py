"""structlog setup for the CLI and the per-build, per-stage log context.

Log records go to stderr; stdout carries build reports and JSON output.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from agentspec.config import get_settings

# libraries that log every request at INFO while endpoints are probed
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str, json_output: bool | None = None) -> None:
    """Configure structlog over stdlib logging.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output. If None, JSON when APP_ENV is prod.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    if json_output is None:
        json_output = get_settings().app_env == "prod"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stage modules log through logging.getLogger, so the build context is merged here
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


@contextmanager
def build_log_context(build_id: str, root: Path) -> Iterator[None]:
    """Tag every record emitted during one build with its id and project root."""
    with structlog.contextvars.bound_contextvars(build_id=build_id, root=str(root)):
        yield


@contextmanager
def stage_log_context(stage: str) -> Iterator[None]:
    with structlog.contextvars.bound_contextvars(stage=stage):
        yield
