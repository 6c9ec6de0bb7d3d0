"""Runtime settings and logging setup."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_TASKS_FILE = ".tagr/tasks.json"
DEFAULT_STATE_FILE = ".tagr/state.json"
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_TAG = "main"


@dataclass
class Settings:
    """Where the task document lives and how chatty the tools are."""

    tasks_file: Path = Path(DEFAULT_TASKS_FILE)
    state_file: Path = Path(DEFAULT_STATE_FILE)
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings(env: dict[str, str] | None = None) -> Settings:
    """Build settings from TAGR_* environment variables."""
    env = os.environ if env is None else env
    level = env.get("TAGR_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    if level not in logging.getLevelNamesMapping():
        level = DEFAULT_LOG_LEVEL
    return Settings(
        tasks_file=Path(env.get("TAGR_TASKS_FILE", DEFAULT_TASKS_FILE)),
        state_file=Path(env.get("TAGR_STATE_FILE", DEFAULT_STATE_FILE)),
        log_level=level,
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Send tagr's log records to stderr; stdout stays free for output and MCP stdio."""
    logger = logging.getLogger("tagr")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
