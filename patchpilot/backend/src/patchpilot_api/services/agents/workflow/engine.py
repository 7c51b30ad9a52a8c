"""Workflow engine: runs one turn of a thread through the node state machine.

Turn protocol:
1. Take the thread's lock (a second concurrent turn fails with
   `ThreadBusyError`) and the working-tree lock.
2. New thread: fork a derived branch. Existing thread: continue from its head
   snapshot and check out its branch.
3. Append the human message, then run nodes from Preanalysis until End,
   following `next_node`. Every node's result is stored as a snapshot; a
   Generate step that modified files is committed and checkpointed.
4. On any turn-aborting error, revert uncommitted file writes, record one
   system error message, and re-raise.

`stream_turn` runs the same turn on a worker thread and yields workflow events.
"""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, Sequence

from patchpilot_contracts.checkpoint import AcceptResponse, Checkpoint, RejectResponse
from patchpilot_contracts.events import (
    ErrorEvent,
    NodeEndEvent,
    NodeStartEvent,
    TurnEndEvent,
    WorkflowEvent,
)
from patchpilot_contracts.thread import Message, MessageRole, ThreadState, ThreadUpdate

from ...diagnostics.syntax import DiagnosticsSource
from ...files.journal import JournaledFiles
from ...files.workspace import FileAccess
from ...llm.client import LanguageModel
from ...persistence.interface import CheckpointStore
from ...settings.config import EngineSettings
from ...vcs.git import VersionControl, VersionControlError
from .checkpoints import CheckpointManager
from .errors import ThreadBusyError, ThreadConcludedError, ThreadNotFoundError
from .nodes.analyze import run_analyze
from .nodes.generate import run_generate
from .nodes.preanalysis import run_preanalysis
from .nodes.validation import run_validation
from .results import Result
from .runtime import EventSink, TurnContext, discard_events
from .state import START, WorkflowNode, apply_update, next_node

logger = logging.getLogger(__name__)

NodeFn = Callable[[ThreadState, TurnContext], ThreadUpdate]

_DEFAULT_NODES: dict[WorkflowNode, NodeFn] = {
    WorkflowNode.preanalysis: run_preanalysis,
    WorkflowNode.analyze: run_analyze,
    WorkflowNode.generate: run_generate,
    WorkflowNode.validation: run_validation,
}

_STREAM_DONE = object()


def error_code(exc: BaseException) -> str:
    return str(getattr(exc, "code", None) or "internal_error")


def error_message(exc: BaseException) -> str:
    return str(getattr(exc, "message", None) or exc) or exc.__class__.__name__


class WorkflowEngine:
    def __init__(
        self,
        *,
        model: LanguageModel,
        files: FileAccess,
        vcs: VersionControl,
        diagnostics: DiagnosticsSource,
        store: CheckpointStore,
        settings: EngineSettings | None = None,
        nodes: dict[WorkflowNode, NodeFn] | None = None,
    ) -> None:
        self._model = model
        self._files = files
        self._vcs = vcs
        self._diagnostics = diagnostics
        self._store = store
        self._settings = settings or EngineSettings()
        self._nodes = {**_DEFAULT_NODES, **(nodes or {})}
        self.checkpoints = CheckpointManager(
            vcs=vcs,
            store=store,
            model=model,
            branch_prefix=self._settings.branch_prefix,
        )

        self._registry_lock = threading.Lock()
        self._thread_locks: dict[str, threading.Lock] = {}
        self._active: dict[str, TurnContext] = {}

    # ---- thread bookkeeping ----

    def _thread_lock(self, thread_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._thread_locks.setdefault(thread_id, threading.Lock())

    def _forget(self, thread_id: str) -> None:
        # concluded threads never take their lock again
        with self._registry_lock:
            self._thread_locks.pop(thread_id, None)

    @contextmanager
    def _exclusive(self, thread_id: str) -> Iterator[None]:
        lock = self._thread_lock(thread_id)
        if not lock.acquire(blocking=False):
            raise ThreadBusyError(thread_id)
        try:
            with self.checkpoints.worktree_lock:
                yield
        finally:
            lock.release()

    def require_thread(self, thread_id: str) -> None:
        if self._store.thread_exists(thread_id):
            return
        if self._store.history(thread_id):
            raise ThreadConcludedError(thread_id)
        raise ThreadNotFoundError(thread_id)

    def get_state(self, thread_id: str) -> ThreadState:
        """Snapshot the thread continues from (last snapshot once concluded)."""

        head = self._store.head(thread_id)
        if head is not None:
            return self._store.get_snapshot(head)
        history = self._store.history(thread_id)
        if not history:
            raise ThreadNotFoundError(thread_id)
        return history[-1]

    def get_history(self, thread_id: str) -> list[ThreadState]:
        history = self._store.history(thread_id)
        if not history:
            raise ThreadNotFoundError(thread_id)
        return history

    def list_checkpoints(self, thread_id: str) -> list[Checkpoint]:
        if not self._store.history(thread_id):
            raise ThreadNotFoundError(thread_id)
        return self.checkpoints.list_checkpoints(thread_id)

    def cancel(self, thread_id: str) -> bool:
        with self._registry_lock:
            ctx = self._active.get(thread_id)
        if ctx is None:
            return False
        logger.info("workflow.cancel thread_id=%s node=%s", thread_id, ctx.node)
        ctx.cancel.cancel()
        return True

    # ---- turns ----

    def _begin(self, prompt: str, selected_files: Sequence[str], thread_id: str, *, new_thread: bool) -> ThreadState:
        if new_thread:
            base = ThreadState(thread_id=thread_id)
        else:
            head = self._store.head(thread_id)
            if head is None:
                raise ThreadConcludedError(thread_id)
            base = self._store.get_snapshot(head)

        selected = tuple(dict.fromkeys([*base.selected_files, *selected_files]))
        return base.model_copy(
            update={
                "messages": base.messages + (Message(role=MessageRole.human, content=prompt),),
                "selected_files": selected,
                "files_modified": (),
                "diff": "",
                "validation_rounds": 0,
            }
        )

    def _run(self, state: ThreadState, ctx: TurnContext, *, activate: bool) -> ThreadState:
        node = START
        try:
            if activate:
                self.checkpoints.activate(state.thread_id)
            while node is not WorkflowNode.end:
                ctx.check_cancelled()
                ctx.node = node.value
                logger.info("workflow.node start thread_id=%s node=%s", state.thread_id, node.value)
                ctx.emit(NodeStartEvent(thread_id=state.thread_id, node=node.value))

                state = apply_update(state, self._nodes[node](state, ctx))

                if node is WorkflowNode.generate and state.files_modified:
                    state, checkpoint = self.checkpoints.commit(state)
                    ctx.files.clear()
                    ctx.log.public(f"Checkpoint created: {checkpoint.commit_id[:10]} {checkpoint.message.splitlines()[0]}")
                else:
                    self._store.append_snapshot(state)

                ctx.emit(NodeEndEvent(thread_id=state.thread_id, node=node.value))
                logger.info(
                    "workflow.node end thread_id=%s node=%s mode=%s",
                    state.thread_id,
                    node.value,
                    state.conversation_mode.value if state.conversation_mode else None,
                )
                node = next_node(node, state.conversation_mode)
        except Exception as e:
            self._fail(state, ctx, e)
            raise
        return state

    def _fail(self, state: ThreadState, ctx: TurnContext, exc: BaseException) -> None:
        restored = ctx.files.rollback()
        if restored:
            ctx.log.internal(f"reverted uncommitted writes: {', '.join(restored)}")
            # diff() and commit_all() stage the writes; the index must follow the rollback
            try:
                ctx.vcs.unstage()
            except VersionControlError as unstage_error:
                logger.error("workflow.unstage failed thread_id=%s error=%s", state.thread_id, unstage_error)
            # the reverted writes are no longer part of the working tree
            state = state.model_copy(update={"files_modified": (), "diff": ""})
        error = Message(role=MessageRole.system, content=f"Error ({error_code(exc)}): {error_message(exc)}")
        self._store.append_snapshot(state.model_copy(update={"messages": state.messages + (error,)}))
        ctx.log.error(error_message(exc))
        logger.warning(
            "workflow.turn failed thread_id=%s node=%s code=%s", state.thread_id, ctx.node, error_code(exc)
        )

    def process_turn(
        self,
        prompt: str,
        selected_files: Sequence[str] = (),
        thread_id: str | None = None,
        *,
        emit: EventSink = discard_events,
        on_start: Callable[[str], None] | None = None,
    ) -> ThreadState:
        """Run one turn to completion and return the resulting thread state.

        `thread_id=None` starts a new thread (and forks its branch).
        """

        new_thread = thread_id is None
        if thread_id is None:
            thread_id = uuid.uuid4().hex
        else:
            self.require_thread(thread_id)

        with self._exclusive(thread_id):
            if new_thread:
                self.checkpoints.fork(thread_id)
            state = self._begin(prompt, selected_files, thread_id, new_thread=new_thread)
            ctx = TurnContext(
                thread_id=thread_id,
                model=self._model,
                files=JournaledFiles(self._files),
                vcs=self._vcs,
                diagnostics=self._diagnostics,
                settings=self._settings,
                emit=emit,
            )
            with self._registry_lock:
                self._active[thread_id] = ctx
            if on_start is not None:
                on_start(thread_id)
            logger.info("workflow.turn start thread_id=%s messages=%s", thread_id, len(state.messages))
            try:
                final = self._run(state, ctx, activate=not new_thread)
            finally:
                with self._registry_lock:
                    self._active.pop(thread_id, None)

        logger.info(
            "workflow.turn end thread_id=%s files_modified=%s commit_id=%s",
            final.thread_id,
            len(final.files_modified),
            final.commit_id,
        )
        return final

    def stream_turn(
        self,
        prompt: str,
        selected_files: Sequence[str] = (),
        thread_id: str | None = None,
    ) -> Iterator[WorkflowEvent]:
        """Run a turn on a worker thread and yield its events as they happen.

        The stream always ends with `turn_end` or `error`.
        """

        events: queue.Queue[object] = queue.Queue()
        started: dict[str, str] = {}

        def on_start(tid: str) -> None:
            started["thread_id"] = tid

        def worker() -> None:
            try:
                final = self.process_turn(prompt, selected_files, thread_id, emit=events.put, on_start=on_start)
                events.put(TurnEndEvent(thread_id=final.thread_id, state=final))
            except Exception as e:
                tid = started.get("thread_id") or thread_id or ""
                events.put(ErrorEvent(thread_id=tid, code=error_code(e), message=error_message(e)))
            finally:
                events.put(_STREAM_DONE)

        threading.Thread(target=worker, name="patchpilot-turn", daemon=True).start()
        while True:
            item = events.get()
            if item is _STREAM_DONE:
                return
            yield item  # type: ignore[misc]

    # ---- checkpoint operations ----

    def restore(self, thread_id: str, commit_id: str) -> Result[ThreadState]:
        self.require_thread(thread_id)
        with self._exclusive(thread_id):
            return self.checkpoints.restore(thread_id, commit_id)

    def accept(self, thread_id: str) -> Result[AcceptResponse]:
        self.require_thread(thread_id)
        with self._exclusive(thread_id):
            result = self.checkpoints.accept(thread_id)
        if result.ok:
            self._forget(thread_id)
        return result

    def reject(self, thread_id: str) -> Result[RejectResponse]:
        self.require_thread(thread_id)
        with self._exclusive(thread_id):
            result = self.checkpoints.reject(thread_id)
        if result.ok:
            self._forget(thread_id)
        return result
