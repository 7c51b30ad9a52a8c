from __future__ import annotations

import logging
import os
from typing import Final

_NOISY: Final[tuple[str, ...]] = ("openai", "httpx", "httpcore")


def _level(name: str | None, default: int) -> int:
    value = getattr(logging, (name or "").strip().upper(), None)
    return value if isinstance(value, int) else default


def parse_logger_levels(raw: str | None) -> dict[str, int]:
    """Parse `name=LEVEL` pairs, comma separated. Malformed pairs are skipped."""

    out: dict[str, int] = {}
    for item in (raw or "").split(","):
        name, sep, level = item.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        value = _level(level, -1)
        if value >= 0:
            out[name] = value
    return out


def configure_logging() -> None:
    """Configure simple, low-noise console logging.

    Goals:
    - show progress through workflow nodes, model calls and git operations
    - keep output safe (no prompts / API keys)
    - keep output low-noise (no per-token logs)

    Controlled by env vars (read at call time, after `load_env()`):
    - LOG_LEVEL=DEBUG|INFO|WARNING|ERROR (default INFO)
    - PATCHPILOT_LOG_LEVELS=logger=LEVEL,... per-logger overrides, e.g.
      `patchpilot_api.services.vcs=DEBUG` to trace git without the rest

    Note: uvicorn also has its own logging config; this sets up our app logger
    and a reasonable default root handler.
    """

    level = _level(os.getenv("LOG_LEVEL", "INFO"), logging.INFO)

    # Avoid double-config when imported multiple times.
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )

    # Reduce known chatty loggers unless explicitly requested.
    if level >= logging.INFO:
        for noisy in _NOISY:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    for name, override in parse_logger_levels(os.getenv("PATCHPILOT_LOG_LEVELS")).items():
        logging.getLogger(name).setLevel(override)
