"""Shared fixtures: a scripted model, an in-memory version control fake, and an
engine wired to a `tmp_path` workspace."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence

import pytest

from patchpilot_api.services.agents.workflow.engine import WorkflowEngine
from patchpilot_api.services.diagnostics.syntax import SyntaxDiagnostics
from patchpilot_api.services.files.journal import JournaledFiles
from patchpilot_api.services.files.workspace import LocalWorkspace
from patchpilot_api.services.llm.client import LLMClientError, ModelReply, ToolCall, ToolSpec
from patchpilot_api.services.persistence.memory_store import InMemoryCheckpointStore
from patchpilot_api.services.settings.config import EngineSettings
from patchpilot_api.services.vcs.git import VersionControlError
from patchpilot_contracts.checkpoint import CommitInfo
from patchpilot_contracts.tools import Diagnostic

_call_ids = itertools.count(1)


def tool_call(name: str, **arguments: Any) -> ToolCall:
    return ToolCall(call_id=f"call_{next(_call_ids)}", name=name, arguments=arguments)


def tool_round(*calls: ToolCall, content: str = "") -> ModelReply:
    return ModelReply(content=content, tool_calls=tuple(calls))


class ScriptedModel:
    """`LanguageModel` fake answering from per-step queues.

    Lookups try the full step name first (`analyze.change_request`), then its
    prefix (`analyze`). Exhausted or missing queues fall back to defaults: a
    text reply naming the step, and tool loops that finish immediately.
    """

    def __init__(
        self,
        *,
        modes: Sequence[Any] = (),
        text: dict[str, list[str]] | None = None,
        tools: dict[str, list[ModelReply]] | None = None,
        failing_streams: Sequence[str] = (),
    ) -> None:
        self.modes = list(modes)
        self.text = {k: list(v) for k, v in (text or {}).items()}
        self.tools = {k: list(v) for k, v in (tools or {}).items()}
        self.failing_streams = set(failing_streams)
        self.calls: list[tuple[str, str, list[dict[str, Any]]]] = []
        self.on_call: Callable[[str], None] | None = None

    def _record(self, kind: str, step: str, messages: Sequence[dict[str, Any]]) -> None:
        self.calls.append((kind, step, list(messages)))
        if self.on_call is not None:
            self.on_call(step)

    @staticmethod
    def _pop(queues: dict[str, list[Any]], step: str) -> Any | None:
        for key in (step, step.split(".", 1)[0]):
            queue = queues.get(key)
            if queue:
                return queue.pop(0)
        return None

    def steps(self, kind: str | None = None) -> list[str]:
        return [step for k, step, _ in self.calls if kind is None or k == kind]

    def messages_for(self, step: str) -> list[list[dict[str, Any]]]:
        return [m for _, s, m in self.calls if s == step]

    def invoke(self, messages: Sequence[dict[str, Any]], *, step: str, temperature: float = 0.0) -> str:
        self._record("invoke", step, messages)
        out = self._pop(self.text, step)
        return out if out is not None else f"reply for {step}"

    def stream(self, messages: Sequence[dict[str, Any]], *, step: str, temperature: float = 0.0) -> Iterator[str]:
        if step in self.failing_streams:
            self.failing_streams.discard(step)
            yield "partial "
            raise LLMClientError(f"stream dropped at {step}")
        self._record("stream", step, messages)
        out = self._pop(self.text, step)
        text = out if out is not None else f"reply for {step}"
        for i, word in enumerate(text.split(" ")):
            yield word if i == 0 else " " + word

    def invoke_structured(self, messages: Sequence[dict[str, Any]], schema: type[Any], *, step: str) -> Any:
        self._record("structured", step, messages)
        if not self.modes:
            raise LLMClientError("no scripted mode left")
        mode = self.modes.pop(0)
        if isinstance(mode, Exception):
            raise mode
        return schema.model_validate({"conversation_mode": mode, "reasoning": "scripted"})

    def invoke_tools(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[ToolSpec],
        *,
        step: str,
        temperature: float = 0.0,
    ) -> ModelReply:
        self._record("tools", step, messages)
        reply = self._pop(self.tools, step)
        return reply if reply is not None else ModelReply(content="done")


def _snapshot(root: Path) -> dict[str, str]:
    out: dict[str, str] = {}
    for p in sorted(root.rglob("*")):
        if p.is_file() and ".git" not in p.relative_to(root).parts:
            out[p.relative_to(root).as_posix()] = p.read_text(encoding="utf-8")
    return out


class FakeVCS:
    """In-memory stand-in for `GitRepository` that snapshots the workspace per commit."""

    def __init__(self, root: Path, branch: str = "main") -> None:
        self.root = root
        self._ids = itertools.count(1)
        self.commits: dict[str, tuple[str, dict[str, str], str | None]] = {}
        root_commit = self._new_commit("initial", _snapshot(root), None)
        self.branches: dict[str, str] = {branch: root_commit}
        self.current = branch
        self.fail_commit = False
        self.unstage_calls = 0
        self.merges: list[tuple[str, str, str]] = []

    def _new_commit(self, message: str, files: dict[str, str], parent: str | None) -> str:
        commit_id = f"{next(self._ids):040x}"
        self.commits[commit_id] = (message, files, parent)
        return commit_id

    def _write_tree(self, files: dict[str, str]) -> None:
        for path in _snapshot(self.root):
            if path not in files:
                (self.root / path).unlink()
        for path, content in files.items():
            target = self.root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

    def current_branch(self) -> str:
        return self.current

    def head_commit(self) -> str:
        return self.branches[self.current]

    def create_and_checkout(self, name: str) -> None:
        if name in self.branches:
            raise VersionControlError(f"branch exists: {name}")
        self.branches[name] = self.head_commit()
        self.current = name

    def checkout(self, name: str) -> None:
        if name not in self.branches:
            raise VersionControlError(f"no such branch: {name}")
        self.current = name
        self._write_tree(self.commits[self.branches[name]][1])

    def diff(self) -> str:
        head = self.commits[self.head_commit()][1]
        now = _snapshot(self.root)
        changed = sorted(p for p in set(head) | set(now) if head.get(p) != now.get(p))
        return "".join(f"diff --git a/{p} b/{p}\n" for p in changed)

    def commit_all(self, message: str) -> str:
        if self.fail_commit:
            raise VersionControlError("commit rejected by hook")
        files = _snapshot(self.root)
        if files == self.commits[self.head_commit()][1]:
            raise VersionControlError("Nothing to commit: working tree matches HEAD")
        commit_id = self._new_commit(message, files, self.head_commit())
        self.branches[self.current] = commit_id
        return commit_id

    def reset_hard(self, commit_id: str) -> None:
        if commit_id == "HEAD":
            commit_id = self.head_commit()
        if commit_id not in self.commits:
            raise VersionControlError(f"unknown commit {commit_id}")
        self.branches[self.current] = commit_id
        self._write_tree(self.commits[commit_id][1])

    def unstage(self) -> None:
        # No index here; count calls so tests can see the engine asked for it.
        self.unstage_calls += 1

    def squash_merge_into(self, target_branch: str, message: str, *, source_branch: str) -> str:
        files = self.commits[self.branches[source_branch]][1]
        self.current = target_branch
        merged = self._new_commit(message, files, self.branches[target_branch])
        self.branches[target_branch] = merged
        self._write_tree(files)
        self.merges.append((source_branch, target_branch, message))
        return merged

    def commits_since(self, commit_id: str) -> list[CommitInfo]:
        out: list[CommitInfo] = []
        cursor: str | None = self.head_commit()
        while cursor is not None and cursor != commit_id:
            message, _, parent = self.commits[cursor]
            out.append(CommitInfo(commit_id=cursor, message=message))
            cursor = parent
        return list(reversed(out))

    def delete_branch(self, name: str) -> None:
        if name == self.current:
            raise VersionControlError(f"cannot delete the checked out branch {name}")
        self.branches.pop(name)


class FakeDiagnostics:
    """Diagnostics answering from a queue per path; falls back to no problems."""

    def __init__(self, scripted: dict[str, list[list[Diagnostic]]] | None = None) -> None:
        self.scripted = {k: list(v) for k, v in (scripted or {}).items()}
        self.checked: list[str] = []

    def diagnostics_for(self, path: str) -> list[Diagnostic]:
        self.checked.append(path)
        queue = self.scripted.get(path)
        return queue.pop(0) if queue else []


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    (root / "utils.py").write_text("def scale(x):\n    y = x * 2\n    return y\n", encoding="utf-8")
    (root / "main.py").write_text("from utils import scale\n\nprint(scale(3))\n", encoding="utf-8")
    return root


@pytest.fixture
def settings(workspace: Path) -> EngineSettings:
    return EngineSettings(workspace_root=workspace, max_tool_iterations=6, max_validation_rounds=2)


@pytest.fixture
def vcs(workspace: Path) -> FakeVCS:
    return FakeVCS(workspace)


@pytest.fixture
def store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def make_engine(workspace: Path, vcs: FakeVCS, store: InMemoryCheckpointStore, settings: EngineSettings):
    def _make(model: ScriptedModel, diagnostics: Any = None) -> WorkflowEngine:
        return WorkflowEngine(
            model=model,
            files=LocalWorkspace(workspace),
            vcs=vcs,
            diagnostics=diagnostics if diagnostics is not None else SyntaxDiagnostics(workspace),
            store=store,
            settings=settings,
        )

    return _make


@pytest.fixture
def make_ctx(workspace: Path, vcs: FakeVCS, settings: EngineSettings):
    """Build a bare `TurnContext` for node- and tool-level tests."""

    from patchpilot_api.services.agents.workflow.runtime import TurnContext

    def _make(model: ScriptedModel, *, emit: Any = None, **overrides: Any) -> TurnContext:
        events: list[Any] = []
        ctx = TurnContext(
            thread_id="t-test",
            model=model,
            files=JournaledFiles(LocalWorkspace(workspace)),
            vcs=vcs,
            diagnostics=FakeDiagnostics(),
            settings=EngineSettings(**{**settings.__dict__, **overrides}),
            emit=emit if emit is not None else events.append,
        )
        ctx.events = events  # type: ignore[attr-defined]
        return ctx

    return _make
