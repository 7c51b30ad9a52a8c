"""Thread contracts.

A thread is one ongoing conversation with its own version-control branch and
checkpoint history. Thread state values are immutable: every workflow node
returns a `ThreadUpdate` and the engine builds a new `ThreadState` from it, so
snapshots can be shared without copying.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def new_message_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    human = "human"
    assistant = "assistant"
    tool = "tool"
    system = "system"


class ConversationMode(str, Enum):
    """Classification governing which workflow nodes a turn traverses.

    `validation_feedback` is never produced by the classifier; only the
    Validation node sets it.
    """

    general_chat = "general_chat"
    codebase_chat = "codebase_chat"
    change_request = "change_request"
    validation_feedback = "validation_feedback"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Stable id; streamed token chunks carry the same id as their final message.
    message_id: str = Field(default_factory=new_message_id)
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=_utc_now)
    # Set on tool-result messages only.
    tool_name: str | None = None
    tool_call_id: str | None = None


class ThreadState(BaseModel):
    model_config = ConfigDict(frozen=True)

    thread_id: str
    messages: tuple[Message, ...] = ()
    selected_files: tuple[str, ...] = ()
    conversation_mode: ConversationMode | None = None
    files_modified: tuple[str, ...] = ()
    diff: str = ""
    commit_id: str | None = None
    code_context: str = ""
    # Summaries of committed changes, newest last; fed to later Analyze calls.
    previous_changes: tuple[str, ...] = ()
    # Validation -> Analyze loops taken in the current turn.
    validation_rounds: int = 0


class ThreadUpdate(BaseModel):
    """Partial update returned by a workflow node.

    `messages` are appended; every other field replaces the current value when
    it is not None.
    """

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = ()
    selected_files: tuple[str, ...] | None = None
    conversation_mode: ConversationMode | None = None
    files_modified: tuple[str, ...] | None = None
    diff: str | None = None
    commit_id: str | None = None
    code_context: str | None = None
    previous_changes: tuple[str, ...] | None = None
    validation_rounds: int | None = None
