"""Workflow event models.

Events are emitted by the streaming variant of a turn and drive a chat UI.

Design goals:
- One event per line on the wire (NDJSON).
- Uses a discriminated union (Pydantic v2) keyed by the `event` field.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from .thread import ThreadState


class LogLevel(str, Enum):
    """Visibility of a log entry.

    `internal` entries only reach the process logger; every other level is
    also forwarded to the event stream.
    """

    internal = "internal"
    thinking = "thinking"
    public = "public"
    diff = "diff"
    tool = "tool"
    error = "error"


class WorkflowEventType(str, Enum):
    node_start = "node_start"
    node_end = "node_end"
    model_start = "model_start"
    model_token = "model_token"
    model_end = "model_end"
    tool_end = "tool_end"
    log = "log"
    error = "error"
    turn_end = "turn_end"


class WorkflowEventBase(BaseModel):
    event: WorkflowEventType
    thread_id: str


class NodeStartEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.node_start] = WorkflowEventType.node_start
    node: str


class NodeEndEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.node_end] = WorkflowEventType.node_end
    node: str


class ModelStartEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.model_start] = WorkflowEventType.model_start
    node: str
    step: str
    message_id: str


class ModelTokenEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.model_token] = WorkflowEventType.model_token
    node: str
    message_id: str
    content: str
    # True when `content` is the complete text and replaces every token already
    # delivered for this message id (streaming fallback).
    reset: bool = False


class ModelEndEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.model_end] = WorkflowEventType.model_end
    node: str
    step: str
    message_id: str


class ToolEndEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.tool_end] = WorkflowEventType.tool_end
    node: str
    tool_name: str
    content: str
    call_id: str


class LogEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.log] = WorkflowEventType.log
    level: LogLevel
    message: str


class ErrorEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.error] = WorkflowEventType.error
    code: str
    message: str


class TurnEndEvent(WorkflowEventBase):
    event: Literal[WorkflowEventType.turn_end] = WorkflowEventType.turn_end
    state: ThreadState


WorkflowEvent = Annotated[
    Union[
        NodeStartEvent,
        NodeEndEvent,
        ModelStartEvent,
        ModelTokenEvent,
        ModelEndEvent,
        ToolEndEvent,
        LogEvent,
        ErrorEvent,
        TurnEndEvent,
    ],
    Field(discriminator="event"),
]
