from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pytest

from patchpilot_api.logging_config import configure_logging, parse_logger_levels
from patchpilot_api.services.agents.factory import build_engine, build_store
from patchpilot_api.services.diagnostics.syntax import SyntaxDiagnostics
from patchpilot_api.services.llm.client import LLMClientError, build_language_model
from patchpilot_api.services.llm.stub import StubChatModel
from patchpilot_api.services.persistence.file_store import FileCheckpointStore
from patchpilot_api.services.persistence.memory_store import InMemoryCheckpointStore
from patchpilot_api.services.settings.config import EngineSettings


def test_from_env_reads_values(monkeypatch: Any, tmp_path: Path) -> None:
    monkeypatch.setenv("LLM_MODE", "OpenAI")
    monkeypatch.setenv("PATCHPILOT_WORKSPACE_ROOT", str(tmp_path))
    monkeypatch.setenv("PATCHPILOT_STORE_PATH", str(tmp_path / "store.json"))
    monkeypatch.setenv("PATCHPILOT_MAX_VALIDATION_ROUNDS", "5")
    monkeypatch.setenv("LLM_LOG_OUTPUT", "yes")

    s = EngineSettings.from_env()

    assert s.llm_mode == "openai"
    assert s.workspace_root == tmp_path.resolve()
    assert s.store_path == tmp_path / "store.json"
    assert s.max_validation_rounds == 5
    assert s.log_model_output is True


def test_invalid_numbers_fall_back_to_defaults(monkeypatch: Any) -> None:
    monkeypatch.setenv("PATCHPILOT_MAX_TOOL_ITERATIONS", "lots")
    monkeypatch.setenv("PATCHPILOT_MAX_LIST_CALLS", "0")
    monkeypatch.delenv("PATCHPILOT_STORE_PATH", raising=False)

    s = EngineSettings.from_env()

    assert s.max_tool_iterations == EngineSettings.max_tool_iterations
    assert s.max_list_calls == EngineSettings.max_list_calls
    assert s.store_path is None


def test_openai_mode_requires_a_key() -> None:
    with pytest.raises(LLMClientError):
        build_language_model(EngineSettings(llm_mode="openai", openai_api_key=None))


def test_unknown_mode_falls_back_to_stub() -> None:
    assert isinstance(build_language_model(EngineSettings(llm_mode="mystery")), StubChatModel)


def test_store_choice_follows_settings(tmp_path: Path) -> None:
    assert isinstance(build_store(EngineSettings()), InMemoryCheckpointStore)
    assert isinstance(build_store(EngineSettings(store_path=tmp_path / "s.json")), FileCheckpointStore)


def test_build_engine_wires_collaborators(tmp_path: Path) -> None:
    engine = build_engine(EngineSettings(workspace_root=tmp_path))

    assert engine.checkpoints.branch_for("abc") == "patchpilot-abc"


def test_syntax_diagnostics(tmp_path: Path) -> None:
    (tmp_path / "ok.py").write_text("x = 1\n", encoding="utf-8")
    (tmp_path / "bad.py").write_text("def f(:\n    pass\n", encoding="utf-8")
    (tmp_path / "bad.json").write_text('{"a": }', encoding="utf-8")
    (tmp_path / "notes.txt").write_text("anything (", encoding="utf-8")
    diagnostics = SyntaxDiagnostics(tmp_path)

    assert diagnostics.diagnostics_for("ok.py") == []
    assert diagnostics.diagnostics_for("notes.txt") == []
    assert diagnostics.diagnostics_for("gone.py") == []
    assert diagnostics.diagnostics_for("../outside.py") == []
    (bad,) = diagnostics.diagnostics_for("bad.py")
    assert bad.severity.value == "error"
    assert bad.line == 1
    (bad_json,) = diagnostics.diagnostics_for("bad.json")
    assert bad_json.col == 7


def test_parse_logger_levels_skips_malformed_pairs() -> None:
    parsed = parse_logger_levels("patchpilot_api.services.vcs=debug, bogus, =INFO, x=LOUD,openai=ERROR")

    assert parsed == {"patchpilot_api.services.vcs": logging.DEBUG, "openai": logging.ERROR}


def test_configure_logging_applies_overrides(monkeypatch: Any) -> None:
    root = logging.getLogger()
    vcs_logger = logging.getLogger("patchpilot_api.services.vcs")
    saved = (root.level, vcs_logger.level)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("PATCHPILOT_LOG_LEVELS", "patchpilot_api.services.vcs=DEBUG")
    try:
        configure_logging()

        assert root.level == logging.WARNING
        assert vcs_logger.level == logging.DEBUG
        assert logging.getLogger("openai").level == logging.WARNING
    finally:
        root.setLevel(saved[0])
        vcs_logger.setLevel(saved[1])
