"""Persistence interface for thread snapshots and checkpoints.

Every workflow step records an immutable `ThreadState` snapshot. Snapshots are
addressed by a store-owned `checkpoint_id`; a per-thread head pointer marks the
snapshot the next turn continues from (restore moves it backwards without
deleting anything after it).

Error behavior:
- `get_snapshot()` raises `KeyError` if the checkpoint does not exist.
- `record_commit()` raises `ValueError` if the commit id was already recorded
  (the commit map is append-only).
- Everything else returns None / empty for unknown threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from patchpilot_contracts.checkpoint import Checkpoint, ParentLineage
from patchpilot_contracts.thread import ThreadState


class CheckpointStore(ABC):
    """Port for thread snapshot and checkpoint persistence."""

    @abstractmethod
    def append_snapshot(self, state: ThreadState) -> str:
        """Append a snapshot to the thread's history, move the head to it, and return its checkpoint id."""

    @abstractmethod
    def get_snapshot(self, checkpoint_id: str) -> ThreadState:
        """Get a snapshot by checkpoint id.

        Raises:
            KeyError: if the checkpoint does not exist.
        """

    @abstractmethod
    def head(self, thread_id: str) -> str | None:
        """Checkpoint id the thread currently continues from."""

    @abstractmethod
    def set_head(self, thread_id: str, checkpoint_id: str) -> None:
        """Point the thread at an existing snapshot."""

    @abstractmethod
    def history(self, thread_id: str) -> list[ThreadState]:
        """All snapshots of a thread, oldest first."""

    @abstractmethod
    def record_commit(self, checkpoint: Checkpoint) -> None:
        """Map a commit id to a checkpoint.

        Raises:
            ValueError: if the commit id was already recorded.
        """

    @abstractmethod
    def lookup_commit(self, commit_id: str) -> Checkpoint | None:
        """Checkpoint recorded for a commit id."""

    @abstractmethod
    def commits_for_thread(self, thread_id: str) -> list[Checkpoint]:
        """Checkpoints recorded for a thread, in commit order."""

    @abstractmethod
    def set_lineage(self, thread_id: str, lineage: ParentLineage) -> None:
        """Record where the thread's derived branch was forked from."""

    @abstractmethod
    def get_lineage(self, thread_id: str) -> ParentLineage | None:
        """Lineage for a thread."""

    @abstractmethod
    def discard_thread(self, thread_id: str) -> None:
        """Forget a concluded thread's lineage and head.

        History and commit records are kept so concluded threads stay inspectable.
        """

    def thread_exists(self, thread_id: str) -> bool:
        return self.head(thread_id) is not None
