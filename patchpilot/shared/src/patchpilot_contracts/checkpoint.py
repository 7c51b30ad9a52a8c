"""Checkpoint contracts.

A checkpoint ties a version-control commit to the workflow snapshot recorded
at the moment the commit was made. Lineage records where a thread's derived
branch was forked from so it can later be squash-merged back.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .api_version import API_VERSION
from .thread import ThreadState


class ParentLineage(BaseModel):
    model_config = ConfigDict(frozen=True)

    parent_branch: str
    parent_commit: str
    derived_branch: str


class Checkpoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    commit_id: str
    checkpoint_id: str
    thread_id: str
    created_at: datetime
    message: str = ""


class CommitInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    commit_id: str
    message: str


class ListCheckpointsResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    checkpoints: list[Checkpoint] = Field(default_factory=list)


class RestoreRequest(BaseModel):
    commit_id: str = Field(..., min_length=1)


class RestoreResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    commit_id: str
    state: ThreadState


class AcceptResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    parent_branch: str
    merge_message: str
    merged_commits: list[CommitInfo] = Field(default_factory=list)


class RejectResponse(BaseModel):
    api_version: str = Field(default=API_VERSION)
    thread_id: str
    discarded_branch: str
