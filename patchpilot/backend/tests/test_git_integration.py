from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from patchpilot_api.services.agents.workflow.engine import WorkflowEngine
from patchpilot_api.services.agents.workflow.results import Ok
from patchpilot_api.services.diagnostics.syntax import SyntaxDiagnostics
from patchpilot_api.services.files.workspace import LocalWorkspace
from patchpilot_api.services.llm.client import ModelReply
from patchpilot_api.services.persistence.memory_store import InMemoryCheckpointStore
from patchpilot_api.services.settings.config import EngineSettings
from patchpilot_api.services.vcs.git import GitRepository, VersionControlError

from conftest import ScriptedModel, tool_call, tool_round

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def _git(root: Path, *args: str) -> str:
    return subprocess.run(["git", *args], cwd=root, capture_output=True, text=True, check=True).stdout.strip()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init")
    _git(root, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(root, "config", "user.email", "dev@example.com")
    _git(root, "config", "user.name", "Dev")
    (root / "utils.py").write_text("def scale(x):\n    y = x * 2\n    return y\n", encoding="utf-8")
    _git(root, "add", "utils.py")
    _git(root, "commit", "-m", "initial")
    return root


def test_git_repository_basics(repo: Path) -> None:
    git = GitRepository(repo)
    base = git.head_commit()

    git.create_and_checkout("feature")
    (repo / "new.py").write_text("VALUE = 1\n", encoding="utf-8")
    diff = git.diff()
    commit = git.commit_all("Add new module")

    assert git.current_branch() == "feature"
    assert "new.py" in diff
    assert "+VALUE = 1" in diff
    assert [(c.commit_id, c.message) for c in git.commits_since(base)] == [(commit, "Add new module")]
    with pytest.raises(VersionControlError, match="Nothing to commit"):
        git.commit_all("empty")

    git.reset_hard(base)
    assert not (repo / "new.py").exists()
    with pytest.raises(VersionControlError):
        git.checkout("does-not-exist")


def test_change_request_then_accept_on_real_repository(repo: Path) -> None:
    def edit(old: int, new: int) -> ModelReply:
        diff = f"@@ -5,2 +5,2 @@\n def scale(x):\n-    y = x * {old}\n+    y = x * {new}\n"
        return tool_round(tool_call("edit_file", file_path="utils.py", diff=diff))

    model = ScriptedModel(
        modes=["change_request", "change_request"],
        text={"commit_message": ["Use factor three", "Use factor four"]},
        tools={"generate.apply": [edit(2, 3), ModelReply(content="ok"), edit(3, 4), ModelReply(content="ok")]},
    )
    engine = WorkflowEngine(
        model=model,
        files=LocalWorkspace(repo),
        vcs=GitRepository(repo),
        diagnostics=SyntaxDiagnostics(repo),
        store=InMemoryCheckpointStore(),
        settings=EngineSettings(workspace_root=repo),
    )

    first = engine.process_turn("use three", ["utils.py"])
    engine.process_turn("use four", thread_id=first.thread_id)

    assert _git(repo, "rev-parse", "--abbrev-ref", "HEAD") == f"patchpilot-{first.thread_id}"
    assert "-    y = x * 2" in first.diff

    result = engine.accept(first.thread_id)

    assert isinstance(result, Ok)
    assert _git(repo, "rev-parse", "--abbrev-ref", "HEAD") == "main"
    assert _git(repo, "log", "-1", "--format=%B") == "Use factor three\n\nUse factor four"
    assert "y = x * 4" in (repo / "utils.py").read_text(encoding="utf-8")
    assert f"patchpilot-{first.thread_id}" not in _git(repo, "branch", "--list")


def test_failed_commit_leaves_index_clean_for_accept(repo: Path) -> None:
    diff = "@@ -1,2 +1,2 @@\n def scale(x):\n-    y = x * 2\n+    y = x * 3\n"
    model = ScriptedModel(
        modes=["change_request", "change_request"],
        text={"commit_message": ["Use factor three", "Add new module"]},
        tools={
            "generate.apply": [
                tool_round(tool_call("edit_file", file_path="utils.py", diff=diff)),
                ModelReply(content="ok"),
                tool_round(tool_call("create_file", file_path="new.py", content="VALUE = 1\n")),
                ModelReply(content="ok"),
            ]
        },
    )
    engine = WorkflowEngine(
        model=model,
        files=LocalWorkspace(repo),
        vcs=GitRepository(repo),
        diagnostics=SyntaxDiagnostics(repo),
        store=InMemoryCheckpointStore(),
        settings=EngineSettings(workspace_root=repo),
    )
    first = engine.process_turn("use three", ["utils.py"])

    hook = repo / ".git" / "hooks" / "pre-commit"
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text("#!/bin/sh\nexit 1\n", encoding="utf-8")
    hook.chmod(0o755)
    with pytest.raises(VersionControlError):
        engine.process_turn("add a module", thread_id=first.thread_id)
    hook.unlink()

    assert not (repo / "new.py").exists()
    assert _git(repo, "status", "--porcelain") == ""

    result = engine.accept(first.thread_id)

    assert isinstance(result, Ok)
    assert _git(repo, "log", "-1", "--format=%B") == "Use factor three"
