from __future__ import annotations

import pytest

from patchpilot_api.services.agents.workflow.state import START, WorkflowNode, apply_update, next_node
from patchpilot_contracts.thread import ConversationMode, Message, MessageRole, ThreadState, ThreadUpdate

N = WorkflowNode
M = ConversationMode


@pytest.mark.parametrize(
    ("node", "mode", "expected"),
    [
        (N.preanalysis, M.general_chat, N.end),
        (N.preanalysis, M.codebase_chat, N.analyze),
        (N.preanalysis, M.change_request, N.analyze),
        (N.preanalysis, None, N.end),
        (N.analyze, M.codebase_chat, N.end),
        (N.analyze, M.change_request, N.generate),
        (N.analyze, M.validation_feedback, N.generate),
        (N.generate, M.change_request, N.validation),
        (N.validation, M.validation_feedback, N.analyze),
        (N.validation, M.change_request, N.end),
    ],
)
def test_next_node(node: WorkflowNode, mode: ConversationMode | None, expected: WorkflowNode) -> None:
    assert next_node(node, mode) is expected


def test_end_has_no_transition() -> None:
    with pytest.raises(ValueError):
        next_node(N.end, M.change_request)


def _walk(modes: list[ConversationMode]) -> list[WorkflowNode]:
    """Visit nodes, taking the mode each node leaves behind from `modes`."""

    path = [START]
    node = START
    for mode in modes:
        node = next_node(node, mode)
        path.append(node)
        if node is N.end:
            break
    return path


def test_general_chat_never_reaches_generate() -> None:
    assert _walk([M.general_chat]) == [N.preanalysis, N.end]


def test_codebase_chat_stops_after_analyze() -> None:
    assert N.generate not in _walk([M.codebase_chat, M.codebase_chat])


def test_validation_feedback_loops_back_into_analyze() -> None:
    first_pass = [M.change_request] * 3
    feedback_pass = [M.validation_feedback] * 3
    path = _walk([*first_pass, *feedback_pass, M.change_request])

    assert path == [
        N.preanalysis,
        N.analyze,
        N.generate,
        N.validation,
        N.analyze,
        N.generate,
        N.validation,
        N.end,
    ]


def test_apply_update_appends_messages_and_replaces_set_fields() -> None:
    state = ThreadState(
        thread_id="t",
        messages=(Message(role=MessageRole.human, content="hi"),),
        selected_files=("a.py",),
        commit_id="abc",
    )

    new = apply_update(
        state,
        ThreadUpdate(
            messages=(Message(role=MessageRole.assistant, content="hello"),),
            conversation_mode=M.general_chat,
            files_modified=(),
        ),
    )

    assert [m.content for m in new.messages] == ["hi", "hello"]
    assert new.conversation_mode is M.general_chat
    assert new.selected_files == ("a.py",)
    assert new.commit_id == "abc"
    assert new.files_modified == ()
    # the original value is untouched
    assert len(state.messages) == 1
