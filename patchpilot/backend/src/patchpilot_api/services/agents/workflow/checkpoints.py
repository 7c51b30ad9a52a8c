"""Checkpoint / version-control adapter.

Lifecycle of a thread's branch:

- fork:     record ParentLineage (current branch + head) and check out
            `<prefix><thread_id>`.
- commit:   after a Generate step that modified files, commit everything with a
            model-written message and map the commit id to the snapshot taken
            at that instant.
- restore:  move the thread's head back to a commit's snapshot and hard-reset
            the working tree; unknown commits fail without touching anything.
- accept:   squash-merge the derived branch into the parent with the
            concatenated commit messages, then conclude the thread.
- reject:   drop the derived branch and conclude the thread.

All version-control mutations go through `worktree_lock`, one per working tree.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from patchpilot_contracts.checkpoint import (
    AcceptResponse,
    Checkpoint,
    CommitInfo,
    ParentLineage,
    RejectResponse,
)
from patchpilot_contracts.thread import MessageRole, ThreadState

from ...llm.client import LanguageModel
from ...persistence.interface import CheckpointStore
from ...vcs.git import VersionControl
from .results import Failure, FailureKind, Ok, Result
from .utils import latest_content, read_prompt, safe_truncate, system, user

logger = logging.getLogger(__name__)

_DEFAULT_COMMIT_MESSAGE = "Apply requested changes"


def _clean_commit_message(raw: str) -> str:
    text = (raw or "").strip().strip("`").strip()
    if text.startswith(("'", '"')) and text.endswith(("'", '"')):
        text = text[1:-1].strip()
    return text or _DEFAULT_COMMIT_MESSAGE


class CheckpointManager:
    def __init__(
        self,
        *,
        vcs: VersionControl,
        store: CheckpointStore,
        model: LanguageModel,
        branch_prefix: str = "patchpilot-",
    ) -> None:
        self._vcs = vcs
        self._store = store
        self._model = model
        self._branch_prefix = branch_prefix
        self.worktree_lock = threading.RLock()

    def branch_for(self, thread_id: str) -> str:
        return f"{self._branch_prefix}{thread_id}"

    def lineage(self, thread_id: str) -> ParentLineage | None:
        return self._store.get_lineage(thread_id)

    def fork(self, thread_id: str) -> ParentLineage:
        with self.worktree_lock:
            lineage = ParentLineage(
                parent_branch=self._vcs.current_branch(),
                parent_commit=self._vcs.head_commit(),
                derived_branch=self.branch_for(thread_id),
            )
            self._vcs.create_and_checkout(lineage.derived_branch)
            self._store.set_lineage(thread_id, lineage)
        logger.info(
            "checkpoint.fork thread_id=%s parent=%s derived=%s",
            thread_id,
            lineage.parent_branch,
            lineage.derived_branch,
        )
        return lineage

    def activate(self, thread_id: str) -> None:
        """Check out the thread's branch if another one is active."""

        lineage = self._store.get_lineage(thread_id)
        if lineage is None:
            return
        with self.worktree_lock:
            if self._vcs.current_branch() != lineage.derived_branch:
                logger.info("checkpoint.activate thread_id=%s branch=%s", thread_id, lineage.derived_branch)
                self._vcs.checkout(lineage.derived_branch)

    def commit_message(self, state: ThreadState) -> str:
        request = latest_content(state.messages, MessageRole.human)
        raw = self._model.invoke(
            [
                system(read_prompt("commit_message.md")),
                user(f"User request:\n{request}\n\nDiff:\n{safe_truncate(state.diff, max_chars=20_000)}"),
            ],
            step="commit_message",
        )
        return _clean_commit_message(raw)

    def commit(self, state: ThreadState) -> tuple[ThreadState, Checkpoint]:
        """Commit the working tree and record a checkpoint for the resulting state.

        Returns the state carrying the new commit id (already stored as a
        snapshot) and the checkpoint.
        """

        message = self.commit_message(state)
        with self.worktree_lock:
            commit_id = self._vcs.commit_all(message)

        request = latest_content(state.messages, MessageRole.human)
        change = f"{request.strip()[:200]} -> {', '.join(state.files_modified)} (commit {commit_id[:10]})"
        committed = state.model_copy(
            update={"commit_id": commit_id, "previous_changes": state.previous_changes + (change,)}
        )
        checkpoint_id = self._store.append_snapshot(committed)
        checkpoint = Checkpoint(
            commit_id=commit_id,
            checkpoint_id=checkpoint_id,
            thread_id=state.thread_id,
            created_at=datetime.now(timezone.utc),
            message=message,
        )
        self._store.record_commit(checkpoint)
        logger.info("checkpoint.commit thread_id=%s commit_id=%s", state.thread_id, commit_id)
        return committed, checkpoint

    def list_checkpoints(self, thread_id: str) -> list[Checkpoint]:
        return self._store.commits_for_thread(thread_id)

    def restore(self, thread_id: str, commit_id: str) -> Result[ThreadState]:
        checkpoint = self._store.lookup_commit(commit_id)
        if checkpoint is None or checkpoint.thread_id != thread_id:
            logger.info("checkpoint.restore not_found thread_id=%s commit_id=%s", thread_id, commit_id)
            return Failure(FailureKind.checkpoint_not_found, f"No checkpoint for commit {commit_id} in thread {thread_id}")

        with self.worktree_lock:
            self.activate(thread_id)
            self._vcs.reset_hard(commit_id)
            self._store.set_head(thread_id, checkpoint.checkpoint_id)
        logger.info("checkpoint.restore thread_id=%s commit_id=%s", thread_id, commit_id)
        return Ok(self._store.get_snapshot(checkpoint.checkpoint_id))

    def accept(self, thread_id: str) -> Result[AcceptResponse]:
        lineage = self._store.get_lineage(thread_id)
        if lineage is None:
            return Failure(FailureKind.no_lineage, f"Thread {thread_id} has no parent branch to merge into")
        if not self._store.commits_for_thread(thread_id):
            return Failure(FailureKind.no_commits, f"Thread {thread_id} has no commits to merge")

        with self.worktree_lock:
            self.activate(thread_id)
            commits: list[CommitInfo] = self._vcs.commits_since(lineage.parent_commit)
            if not commits:
                return Failure(FailureKind.no_commits, f"No commits since {lineage.parent_commit[:10]} on {lineage.derived_branch}")
            merge_message = "\n\n".join(c.message for c in commits)
            self._vcs.squash_merge_into(lineage.parent_branch, merge_message, source_branch=lineage.derived_branch)
            self._vcs.delete_branch(lineage.derived_branch)
            self._store.discard_thread(thread_id)

        logger.info(
            "checkpoint.accept thread_id=%s parent=%s commits=%s", thread_id, lineage.parent_branch, len(commits)
        )
        return Ok(
            AcceptResponse(
                thread_id=thread_id,
                parent_branch=lineage.parent_branch,
                merge_message=merge_message,
                merged_commits=commits,
            )
        )

    def reject(self, thread_id: str) -> Result[RejectResponse]:
        lineage = self._store.get_lineage(thread_id)
        if lineage is None:
            return Failure(FailureKind.no_lineage, f"Thread {thread_id} has no derived branch to discard")

        with self.worktree_lock:
            self.activate(thread_id)
            # drop uncommitted leftovers so the parent checkout is clean
            self._vcs.reset_hard("HEAD")
            self._vcs.checkout(lineage.parent_branch)
            self._vcs.delete_branch(lineage.derived_branch)
            self._store.discard_thread(thread_id)

        logger.info("checkpoint.reject thread_id=%s branch=%s", thread_id, lineage.derived_branch)
        return Ok(RejectResponse(thread_id=thread_id, discarded_branch=lineage.derived_branch))
