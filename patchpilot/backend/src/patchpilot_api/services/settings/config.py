"""Engine settings read from environment variables.

Env vars:
- LLM_MODE=stub|openai (default stub)
- OPENAI_API_KEY (required if openai), OPENAI_BASE_URL (optional; OpenAI-compatible proxies)
- LLM_MODEL_SMALL (default gpt-4o-mini): classification and acknowledgments
- LLM_MODEL_BIG (default gpt-4o): analysis, generation, summaries
- LLM_LOG_OUTPUT=0|1 (default 0): log raw model output
- PATCHPILOT_WORKSPACE_ROOT (default: current directory)
- PATCHPILOT_STORE_PATH (unset: in-memory checkpoints; set: JSON file store)
- PATCHPILOT_BRANCH_PREFIX (default patchpilot-)
- PATCHPILOT_MAX_LIST_CALLS (default 3): directory listings allowed between file reads
- PATCHPILOT_MAX_TOOL_ITERATIONS (default 12): model rounds per tool loop
- PATCHPILOT_MAX_VALIDATION_ROUNDS (default 2): Validation -> Analyze loops per turn
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("settings.invalid name=%s value=%r using_default=%s", name, raw, default)
        return default
    if value < minimum:
        logger.warning("settings.out_of_range name=%s value=%s minimum=%s using_default=%s", name, value, minimum, default)
        return default
    return value


def _env_flag(name: str) -> bool:
    return (_env(name, "0") or "0").strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class EngineSettings:
    llm_mode: str = "stub"
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    small_model: str = "gpt-4o-mini"
    big_model: str = "gpt-4o"
    log_model_output: bool = False
    workspace_root: Path = Path(".")
    store_path: Path | None = None
    branch_prefix: str = "patchpilot-"
    max_list_calls: int = 3
    max_tool_iterations: int = 12
    max_validation_rounds: int = 2

    @classmethod
    def from_env(cls) -> "EngineSettings":
        store_path = _env("PATCHPILOT_STORE_PATH")
        return cls(
            llm_mode=(_env("LLM_MODE", "stub") or "stub").strip().lower(),
            openai_api_key=_env("OPENAI_API_KEY"),
            openai_base_url=_env("OPENAI_BASE_URL"),
            small_model=_env("LLM_MODEL_SMALL", cls.small_model) or cls.small_model,
            big_model=_env("LLM_MODEL_BIG", cls.big_model) or cls.big_model,
            log_model_output=_env_flag("LLM_LOG_OUTPUT"),
            workspace_root=Path(_env("PATCHPILOT_WORKSPACE_ROOT", ".") or ".").resolve(),
            store_path=Path(store_path) if store_path else None,
            branch_prefix=_env("PATCHPILOT_BRANCH_PREFIX", cls.branch_prefix) or cls.branch_prefix,
            max_list_calls=_env_int("PATCHPILOT_MAX_LIST_CALLS", cls.max_list_calls, minimum=1),
            max_tool_iterations=_env_int("PATCHPILOT_MAX_TOOL_ITERATIONS", cls.max_tool_iterations, minimum=1),
            max_validation_rounds=_env_int("PATCHPILOT_MAX_VALIDATION_ROUNDS", cls.max_validation_rounds),
        )
