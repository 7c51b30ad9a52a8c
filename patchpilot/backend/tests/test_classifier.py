from __future__ import annotations

import pytest

from patchpilot_api.services.agents.workflow.classifier import classify
from patchpilot_api.services.agents.workflow.errors import ClassificationFailure
from patchpilot_api.services.llm.client import LLMClientError, extract_json_object
from patchpilot_api.services.llm.stub import StubChatModel, classify_heuristic
from patchpilot_contracts.thread import ConversationMode, Message, MessageRole

from conftest import ScriptedModel

HISTORY = (Message(role=MessageRole.human, content="rename variable x to y in utils.py"),)


def test_classify_returns_scripted_mode() -> None:
    model = ScriptedModel(modes=["change_request"])

    assert classify(model, HISTORY) is ConversationMode.change_request
    assert model.steps() == ["classify"]


def test_classify_wraps_model_errors() -> None:
    model = ScriptedModel(modes=[LLMClientError("timeout")])

    with pytest.raises(ClassificationFailure) as exc:
        classify(model, HISTORY)

    assert exc.value.code == "classification_failure"
    assert "timeout" in exc.value.message


def test_classify_rejects_modes_reserved_for_validation() -> None:
    # validation_feedback is not a classifier output; schema validation fails
    model = ScriptedModel(modes=["validation_feedback"])

    with pytest.raises(ClassificationFailure):
        classify(model, HISTORY)


def test_classify_requires_history() -> None:
    with pytest.raises(ClassificationFailure):
        classify(ScriptedModel(modes=["general_chat"]), ())


@pytest.mark.parametrize(
    ("prompt", "expected"),
    [
        ("hello there", "general_chat"),
        ("explain what this function does", "codebase_chat"),
        ("rename variable x to y in utils.py", "change_request"),
    ],
)
def test_stub_heuristic(prompt: str, expected: str) -> None:
    assert classify_heuristic(prompt) == expected
    history = (Message(role=MessageRole.human, content=prompt),)
    assert classify(StubChatModel(), history).value == expected


def test_extract_json_object_handles_fences_and_prose() -> None:
    assert extract_json_object('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert extract_json_object('Sure! {"a": {"b": 2}} done') == '{"a": {"b": 2}}'
