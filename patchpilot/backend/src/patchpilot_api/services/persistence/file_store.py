"""File-based [`CheckpointStore`](interface.py).

Storage format:
- Single JSON file (path from `PATCHPILOT_STORE_PATH`), e.g. `data/checkpoints.json`.

Write strategy:
- Read-modify-write with an "atomic-ish" replace: write to a temp file then
  `os.replace()` onto the target path (works on Windows).

Notes:
- Calls are serialized with a process-local lock; multiple processes sharing
  one file are not supported.
"""

from __future__ import annotations

import json
import os
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from patchpilot_contracts.checkpoint import Checkpoint, ParentLineage
from patchpilot_contracts.thread import ThreadState

from .interface import CheckpointStore


@dataclass
class _StoreDoc:
    snapshots: dict[str, dict[str, Any]]
    history: dict[str, list[str]]
    heads: dict[str, str]
    commits: dict[str, dict[str, Any]]
    lineage: dict[str, dict[str, Any]]


class FileCheckpointStore(CheckpointStore):
    def __init__(self, store_path: str | Path) -> None:
        self._path = Path(store_path)
        self._lock = threading.RLock()

    def append_snapshot(self, state: ThreadState) -> str:
        checkpoint_id = uuid.uuid4().hex
        with self._lock:
            doc = self._load()
            doc.snapshots[checkpoint_id] = state.model_dump(mode="json")
            doc.history.setdefault(state.thread_id, []).append(checkpoint_id)
            doc.heads[state.thread_id] = checkpoint_id
            self._save(doc)
        return checkpoint_id

    def get_snapshot(self, checkpoint_id: str) -> ThreadState:
        with self._lock:
            raw = self._load().snapshots.get(checkpoint_id)
        if raw is None:
            raise KeyError(checkpoint_id)
        return ThreadState.model_validate(raw)

    def head(self, thread_id: str) -> str | None:
        with self._lock:
            return self._load().heads.get(thread_id)

    def set_head(self, thread_id: str, checkpoint_id: str) -> None:
        with self._lock:
            doc = self._load()
            if checkpoint_id not in doc.snapshots:
                raise KeyError(checkpoint_id)
            doc.heads[thread_id] = checkpoint_id
            self._save(doc)

    def history(self, thread_id: str) -> list[ThreadState]:
        with self._lock:
            doc = self._load()
        return [ThreadState.model_validate(doc.snapshots[c]) for c in doc.history.get(thread_id, [])]

    def record_commit(self, checkpoint: Checkpoint) -> None:
        with self._lock:
            doc = self._load()
            if checkpoint.commit_id in doc.commits:
                raise ValueError(f"commit already recorded: {checkpoint.commit_id}")
            doc.commits[checkpoint.commit_id] = checkpoint.model_dump(mode="json")
            self._save(doc)

    def lookup_commit(self, commit_id: str) -> Checkpoint | None:
        with self._lock:
            raw = self._load().commits.get(commit_id)
        return Checkpoint.model_validate(raw) if raw is not None else None

    def commits_for_thread(self, thread_id: str) -> list[Checkpoint]:
        with self._lock:
            doc = self._load()
        return [Checkpoint.model_validate(c) for c in doc.commits.values() if c.get("thread_id") == thread_id]

    def set_lineage(self, thread_id: str, lineage: ParentLineage) -> None:
        with self._lock:
            doc = self._load()
            doc.lineage[thread_id] = lineage.model_dump(mode="json")
            self._save(doc)

    def get_lineage(self, thread_id: str) -> ParentLineage | None:
        with self._lock:
            raw = self._load().lineage.get(thread_id)
        return ParentLineage.model_validate(raw) if raw is not None else None

    def discard_thread(self, thread_id: str) -> None:
        with self._lock:
            doc = self._load()
            doc.lineage.pop(thread_id, None)
            doc.heads.pop(thread_id, None)
            self._save(doc)

    def _load(self) -> _StoreDoc:
        if not self._path.exists():
            return _StoreDoc(snapshots={}, history={}, heads={}, commits={}, lineage={})

        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return _StoreDoc(snapshots={}, history={}, heads={}, commits={}, lineage={})

        data = json.loads(text)
        return _StoreDoc(
            snapshots=dict(data.get("snapshots", {})),
            history=dict(data.get("history", {})),
            heads=dict(data.get("heads", {})),
            commits=dict(data.get("commits", {})),
            lineage=dict(data.get("lineage", {})),
        )

    def _save(self, doc: _StoreDoc) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            "snapshots": doc.snapshots,
            "history": doc.history,
            "heads": doc.heads,
            "commits": doc.commits,
            "lineage": doc.lineage,
        }

        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(payload, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

        os.replace(tmp_path, self._path)
