"""Shared contract models (single source of truth).

Minimal re-exports for convenient importing.
"""

from .api_version import API_VERSION
from .checkpoint import (
    AcceptResponse,
    Checkpoint,
    CommitInfo,
    ListCheckpointsResponse,
    ParentLineage,
    RejectResponse,
    RestoreRequest,
    RestoreResponse,
)
from .events import (
    ErrorEvent,
    LogEvent,
    LogLevel,
    ModelEndEvent,
    ModelStartEvent,
    ModelTokenEvent,
    NodeEndEvent,
    NodeStartEvent,
    ToolEndEvent,
    TurnEndEvent,
    WorkflowEvent,
    WorkflowEventType,
)
from .thread import ConversationMode, Message, MessageRole, ThreadState, ThreadUpdate
from .tools import Diagnostic, DiagnosticSeverity, DirectoryEntry, EntryKind, ToolResult
from .turn import CancelResponse, ProcessTurnRequest, ProcessTurnResponse, ThreadStateResponse

__all__ = [
    "API_VERSION",
    "AcceptResponse",
    "Checkpoint",
    "CommitInfo",
    "ListCheckpointsResponse",
    "ParentLineage",
    "RejectResponse",
    "RestoreRequest",
    "RestoreResponse",
    "ErrorEvent",
    "LogEvent",
    "LogLevel",
    "ModelEndEvent",
    "ModelStartEvent",
    "ModelTokenEvent",
    "NodeEndEvent",
    "NodeStartEvent",
    "ToolEndEvent",
    "TurnEndEvent",
    "WorkflowEvent",
    "WorkflowEventType",
    "ConversationMode",
    "Message",
    "MessageRole",
    "ThreadState",
    "ThreadUpdate",
    "Diagnostic",
    "DiagnosticSeverity",
    "DirectoryEntry",
    "EntryKind",
    "ToolResult",
    "CancelResponse",
    "ProcessTurnRequest",
    "ProcessTurnResponse",
    "ThreadStateResponse",
]
