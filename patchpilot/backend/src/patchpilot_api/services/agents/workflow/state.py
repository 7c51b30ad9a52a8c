"""Workflow states and transitions.

The turn state machine is a plain enum plus a pure transition function so the
edges can be tested without any I/O:

    Start -> Preanalysis
    Preanalysis -> End        (general chat)
                -> Analyze    (otherwise)
    Analyze     -> Generate   (change request / validation feedback)
                -> End        (otherwise)
    Generate    -> Validation
    Validation  -> Analyze    (validation feedback)
                -> End        (otherwise)
"""

from __future__ import annotations

from enum import Enum

from patchpilot_contracts.thread import ConversationMode, ThreadState, ThreadUpdate


class WorkflowNode(str, Enum):
    preanalysis = "preanalysis"
    analyze = "analyze"
    generate = "generate"
    validation = "validation"
    end = "end"


START = WorkflowNode.preanalysis

GENERATING_MODES = frozenset({ConversationMode.change_request, ConversationMode.validation_feedback})
_ANALYZING_MODES = frozenset({ConversationMode.codebase_chat, *GENERATING_MODES})


def next_node(node: WorkflowNode, mode: ConversationMode | None) -> WorkflowNode:
    if node is WorkflowNode.preanalysis:
        return WorkflowNode.analyze if mode in _ANALYZING_MODES else WorkflowNode.end
    if node is WorkflowNode.analyze:
        return WorkflowNode.generate if mode in GENERATING_MODES else WorkflowNode.end
    if node is WorkflowNode.generate:
        return WorkflowNode.validation
    if node is WorkflowNode.validation:
        return WorkflowNode.analyze if mode is ConversationMode.validation_feedback else WorkflowNode.end
    raise ValueError(f"no transition out of {node.value}")


def apply_update(state: ThreadState, update: ThreadUpdate) -> ThreadState:
    """Merge a node's partial update into a new state value."""

    changes: dict[str, object] = {}
    for name in ThreadUpdate.model_fields:
        if name == "messages":
            continue
        value = getattr(update, name)
        if value is not None:
            changes[name] = value
    if update.messages:
        changes["messages"] = state.messages + tuple(update.messages)
    return state.model_copy(update=changes)
