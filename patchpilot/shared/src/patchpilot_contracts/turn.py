"""Turn contracts.

A turn is one user prompt processed by the workflow engine.

Notes:
- `thread_id` is omitted on the first prompt of a conversation; the server
  creates the thread (and its derived branch) and returns the id.
- The streaming endpoint accepts the same request body and answers with
  newline-delimited workflow events.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .api_version import API_VERSION
from .thread import ThreadState


class ProcessTurnRequest(BaseModel):
    prompt: str = Field(..., min_length=1)
    selected_files: list[str] = Field(default_factory=list)
    thread_id: str | None = None


class ProcessTurnResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    state: ThreadState


class ThreadStateResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    state: ThreadState


class CancelResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    cancelled: bool = Field(
        ...,
        description="False when the thread had no turn in progress.",
    )
