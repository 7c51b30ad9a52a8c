from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv


def _repo_root() -> Path:
    """Walk upwards from this file until the directory holding pyproject.toml."""

    start = Path(__file__).resolve()
    for parent in start.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    # settings -> services -> patchpilot_api -> src -> backend -> patchpilot -> repo root
    return start.parents[6]


def load_env() -> None:
    """Load local .env files if present.

    This is a dev convenience so the backend can be started without manually exporting
    variables. In production (Docker/K8s/etc.), prefer real environment variables.

    Load order (later does NOT override existing env vars):
    1) <repo_root>/.env
    2) <repo_root>/.env.local

    We intentionally set override=False to avoid surprising production behavior.
    """

    repo_root = _repo_root()

    load_dotenv(dotenv_path=repo_root / ".env", override=False)
    load_dotenv(dotenv_path=repo_root / ".env.local", override=False)
