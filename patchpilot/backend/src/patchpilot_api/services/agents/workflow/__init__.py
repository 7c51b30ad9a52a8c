"""Agent orchestration and checkpoint engine.

API layers only need `WorkflowEngine`; the nodes, tools and checkpoint adapter
are implementation details.
"""

from .checkpoints import CheckpointManager
from .classifier import ModeClassification, classify
from .context_gather import GatherResult, gather_context
from .engine import WorkflowEngine, error_code, error_message
from .errors import (
    ClassificationFailure,
    ThreadBusyError,
    ThreadConcludedError,
    ThreadNotFoundError,
    TurnCancelled,
    WorkflowError,
)
from .results import Failure, FailureKind, Ok, Result
from .state import WorkflowNode, apply_update, next_node

__all__ = [
    "CheckpointManager",
    "ModeClassification",
    "classify",
    "GatherResult",
    "gather_context",
    "WorkflowEngine",
    "error_code",
    "error_message",
    "ClassificationFailure",
    "ThreadBusyError",
    "ThreadConcludedError",
    "ThreadNotFoundError",
    "TurnCancelled",
    "WorkflowError",
    "Failure",
    "FailureKind",
    "Ok",
    "Result",
    "WorkflowNode",
    "apply_update",
    "next_node",
]
