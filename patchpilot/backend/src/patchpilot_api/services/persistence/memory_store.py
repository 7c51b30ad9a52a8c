"""In-memory [`CheckpointStore`](interface.py) for single-process deployments and tests."""

from __future__ import annotations

import threading
import uuid

from patchpilot_contracts.checkpoint import Checkpoint, ParentLineage
from patchpilot_contracts.thread import ThreadState

from .interface import CheckpointStore


class InMemoryCheckpointStore(CheckpointStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: dict[str, ThreadState] = {}
        self._history: dict[str, list[str]] = {}
        self._heads: dict[str, str] = {}
        self._commits: dict[str, Checkpoint] = {}
        self._lineage: dict[str, ParentLineage] = {}

    def append_snapshot(self, state: ThreadState) -> str:
        checkpoint_id = uuid.uuid4().hex
        with self._lock:
            self._snapshots[checkpoint_id] = state
            self._history.setdefault(state.thread_id, []).append(checkpoint_id)
            self._heads[state.thread_id] = checkpoint_id
        return checkpoint_id

    def get_snapshot(self, checkpoint_id: str) -> ThreadState:
        with self._lock:
            return self._snapshots[checkpoint_id]

    def head(self, thread_id: str) -> str | None:
        with self._lock:
            return self._heads.get(thread_id)

    def set_head(self, thread_id: str, checkpoint_id: str) -> None:
        with self._lock:
            if checkpoint_id not in self._snapshots:
                raise KeyError(checkpoint_id)
            self._heads[thread_id] = checkpoint_id

    def history(self, thread_id: str) -> list[ThreadState]:
        with self._lock:
            return [self._snapshots[c] for c in self._history.get(thread_id, [])]

    def record_commit(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            if checkpoint.commit_id in self._commits:
                raise ValueError(f"commit already recorded: {checkpoint.commit_id}")
            self._commits[checkpoint.commit_id] = checkpoint

    def lookup_commit(self, commit_id: str) -> Checkpoint | None:
        with self._lock:
            return self._commits.get(commit_id)

    def commits_for_thread(self, thread_id: str) -> list[Checkpoint]:
        with self._lock:
            # dicts keep insertion order, which is commit order
            return [c for c in self._commits.values() if c.thread_id == thread_id]

    def set_lineage(self, thread_id: str, lineage: ParentLineage) -> None:
        with self._lock:
            self._lineage[thread_id] = lineage

    def get_lineage(self, thread_id: str) -> ParentLineage | None:
        with self._lock:
            return self._lineage.get(thread_id)

    def discard_thread(self, thread_id: str) -> None:
        with self._lock:
            self._lineage.pop(thread_id, None)
            self._heads.pop(thread_id, None)
