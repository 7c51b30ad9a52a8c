from __future__ import annotations

import json
from datetime import datetime, timezone

from pydantic import TypeAdapter

from patchpilot_contracts.checkpoint import (
    AcceptResponse,
    Checkpoint,
    CommitInfo,
    ListCheckpointsResponse,
    RestoreRequest,
)
from patchpilot_contracts.events import LogEvent, LogLevel, ModelTokenEvent, WorkflowEvent
from patchpilot_contracts.schema_export import export_json_schema, to_json
from patchpilot_contracts.thread import ConversationMode, Message, MessageRole, ThreadState
from patchpilot_contracts.turn import ProcessTurnRequest, ProcessTurnResponse


def dump(title: str, obj) -> None:
    print(f"\n# {title}")
    if hasattr(obj, "model_dump"):
        print(json.dumps(obj.model_dump(mode="json"), indent=2, sort_keys=True))
    else:
        print(json.dumps(obj, indent=2, sort_keys=True))


def main() -> None:
    now = datetime.now(timezone.utc)

    state = ThreadState(
        thread_id="t1",
        messages=(
            Message(role=MessageRole.human, content="Rename foo to bar in utils.py"),
            Message(role=MessageRole.assistant, content="Let me take a look."),
        ),
        selected_files=("utils.py",),
        conversation_mode=ConversationMode.change_request,
    )

    dump("turn.request", ProcessTurnRequest(prompt="Rename foo to bar", selected_files=["utils.py"]))
    dump("turn.response", ProcessTurnResponse(thread_id="t1", state=state))

    checkpoint = Checkpoint(commit_id="abc123", checkpoint_id="c1", thread_id="t1", created_at=now, message="Rename foo")
    dump("checkpoints.list", ListCheckpointsResponse(thread_id="t1", checkpoints=[checkpoint]))
    dump("checkpoints.restore.request", RestoreRequest(commit_id="abc123"))
    dump(
        "checkpoints.accept.response",
        AcceptResponse(
            thread_id="t1",
            parent_branch="main",
            merge_message="Rename foo",
            merged_commits=[CommitInfo(commit_id="abc123", message="Rename foo")],
        ),
    )

    # Events round-trip through the discriminated union.
    adapter = TypeAdapter(WorkflowEvent)
    for event in (
        ModelTokenEvent(thread_id="t1", node="analyze", message_id="m1", content="Hel"),
        LogEvent(thread_id="t1", level=LogLevel.thinking, message="Gathering code context..."),
    ):
        parsed = adapter.validate_json(event.model_dump_json())
        assert type(parsed) is type(event)
        dump(f"event.{event.event.value}", parsed)

    schema = export_json_schema()
    print(f"\n# schema models: {', '.join(sorted(schema['models']))}")
    assert to_json(schema)


if __name__ == "__main__":
    main()
