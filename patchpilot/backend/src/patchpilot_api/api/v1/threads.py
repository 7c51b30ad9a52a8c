"""Thread / turn endpoints (v1).

Endpoints:
- POST `/api/v1/threads/turns` run one turn (new thread when `thread_id` is omitted)
- POST `/api/v1/threads/turns/stream` same, answered with newline-delimited events
- GET `/api/v1/threads/{thread_id}` current state
- GET `/api/v1/threads/{thread_id}/checkpoints` commits recorded for the thread
- POST `/api/v1/threads/{thread_id}/restore` roll back to a checkpoint
- POST `/api/v1/threads/{thread_id}/accept` squash-merge into the parent branch
- POST `/api/v1/threads/{thread_id}/reject` discard the derived branch
- POST `/api/v1/threads/{thread_id}/cancel` cancel the running turn

The engine is provided by `get_engine`; tests swap it through
`app.dependency_overrides`.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterator, NoReturn

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from patchpilot_contracts.checkpoint import (
    AcceptResponse,
    ListCheckpointsResponse,
    RejectResponse,
    RestoreRequest,
    RestoreResponse,
)
from patchpilot_contracts.turn import (
    CancelResponse,
    ProcessTurnRequest,
    ProcessTurnResponse,
    ThreadStateResponse,
)

from ...services.agents.factory import build_engine
from ...services.agents.workflow import (
    Failure,
    FailureKind,
    WorkflowEngine,
    WorkflowError,
    error_code,
    error_message,
)
from ...services.llm.client import LLMClientError
from ...services.vcs.git import VersionControlError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/threads", tags=["threads"])

_STATUS_BY_CODE = {
    "thread_not_found": 404,
    "thread_busy": 409,
    "thread_concluded": 409,
    "cancelled": 409,
    "classification_failure": 502,
    "llm_error": 502,
    "vcs_error": 500,
}

_STATUS_BY_FAILURE = {
    FailureKind.checkpoint_not_found: 404,
    FailureKind.no_lineage: 409,
    FailureKind.no_commits: 409,
}


@lru_cache(maxsize=1)
def get_engine() -> WorkflowEngine:
    return build_engine()


def _raise_http(exc: Exception) -> NoReturn:
    code = error_code(exc)
    status = _STATUS_BY_CODE.get(code, 500)
    logger.info("api.threads error code=%s status=%s", code, status)
    raise HTTPException(status_code=status, detail={"code": code, "message": error_message(exc)}) from exc


def _raise_failure(failure: Failure) -> NoReturn:
    raise HTTPException(
        status_code=_STATUS_BY_FAILURE.get(failure.kind, 400),
        detail={"code": failure.kind.value, "message": failure.detail},
    )


@router.post("/turns", response_model=ProcessTurnResponse)
def process_turn(req: ProcessTurnRequest, engine: WorkflowEngine = Depends(get_engine)) -> ProcessTurnResponse:
    try:
        state = engine.process_turn(req.prompt, req.selected_files, req.thread_id)
    except (WorkflowError, LLMClientError, VersionControlError) as e:
        _raise_http(e)
    return ProcessTurnResponse(thread_id=state.thread_id, state=state)


@router.post("/turns/stream")
def stream_turn(req: ProcessTurnRequest, engine: WorkflowEngine = Depends(get_engine)) -> StreamingResponse:
    # Unknown or concluded threads fail before the stream starts.
    if req.thread_id is not None:
        try:
            engine.require_thread(req.thread_id)
        except WorkflowError as e:
            _raise_http(e)

    def lines() -> Iterator[str]:
        for event in engine.stream_turn(req.prompt, req.selected_files, req.thread_id):
            yield event.model_dump_json() + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@router.get("/{thread_id}", response_model=ThreadStateResponse)
def get_thread(thread_id: str, engine: WorkflowEngine = Depends(get_engine)) -> ThreadStateResponse:
    try:
        state = engine.get_state(thread_id)
    except WorkflowError as e:
        _raise_http(e)
    return ThreadStateResponse(thread_id=thread_id, state=state)


@router.get("/{thread_id}/checkpoints", response_model=ListCheckpointsResponse)
def list_checkpoints(thread_id: str, engine: WorkflowEngine = Depends(get_engine)) -> ListCheckpointsResponse:
    try:
        checkpoints = engine.list_checkpoints(thread_id)
    except WorkflowError as e:
        _raise_http(e)
    return ListCheckpointsResponse(thread_id=thread_id, checkpoints=checkpoints)


@router.post("/{thread_id}/restore", response_model=RestoreResponse)
def restore(
    thread_id: str, req: RestoreRequest, engine: WorkflowEngine = Depends(get_engine)
) -> RestoreResponse:
    try:
        result = engine.restore(thread_id, req.commit_id)
    except (WorkflowError, VersionControlError) as e:
        _raise_http(e)
    if isinstance(result, Failure):
        _raise_failure(result)
    return RestoreResponse(thread_id=thread_id, commit_id=req.commit_id, state=result.value)


@router.post("/{thread_id}/accept", response_model=AcceptResponse)
def accept(thread_id: str, engine: WorkflowEngine = Depends(get_engine)) -> AcceptResponse:
    try:
        result = engine.accept(thread_id)
    except (WorkflowError, VersionControlError) as e:
        _raise_http(e)
    if isinstance(result, Failure):
        _raise_failure(result)
    return result.value


@router.post("/{thread_id}/reject", response_model=RejectResponse)
def reject(thread_id: str, engine: WorkflowEngine = Depends(get_engine)) -> RejectResponse:
    try:
        result = engine.reject(thread_id)
    except (WorkflowError, VersionControlError) as e:
        _raise_http(e)
    if isinstance(result, Failure):
        _raise_failure(result)
    return result.value


@router.post("/{thread_id}/cancel", response_model=CancelResponse)
def cancel(thread_id: str, engine: WorkflowEngine = Depends(get_engine)) -> CancelResponse:
    return CancelResponse(thread_id=thread_id, cancelled=engine.cancel(thread_id))
