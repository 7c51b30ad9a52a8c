from __future__ import annotations

from patchpilot_api.services.agents.workflow.context_gather import gather_context
from patchpilot_contracts.events import ToolEndEvent
from patchpilot_contracts.thread import Message, MessageRole

from conftest import ScriptedModel, tool_call, tool_round

HISTORY = (Message(role=MessageRole.human, content="why does scale double its input?"),)


def test_reads_are_added_to_context(make_ctx) -> None:
    model = ScriptedModel(tools={"context": [tool_round(tool_call("read_file", file_path="main.py"))]})
    ctx = make_ctx(model)

    result = gather_context(ctx, HISTORY, ["utils.py"])

    assert result.complete
    assert result.selected_files == ("utils.py", "main.py")
    assert result.context.startswith("utils.py\n```\ndef scale(x):")
    assert "main.py\n```\nfrom utils import scale" in result.context
    assert result.agent_message == "Context gathering complete. Files in context: utils.py, main.py."
    assert [m.role for m in result.messages] == [MessageRole.tool]


def test_listing_guard_blocks_after_budget_until_a_read(make_ctx) -> None:
    listing = lambda: tool_call("list_directory", path=".")  # noqa: E731
    model = ScriptedModel(
        tools={
            "context": [
                tool_round(listing(), listing()),
                tool_round(listing()),
                tool_round(tool_call("read_file", file_path="utils.py"), listing()),
            ]
        }
    )
    ctx = make_ctx(model, max_list_calls=2)

    gather_context(ctx, HISTORY, [])

    results = [e for e in ctx.events if isinstance(e, ToolEndEvent)]
    assert [e.tool_name for e in results] == [
        "list_directory",
        "list_directory",
        "list_directory",
        "read_file",
        "list_directory",
    ]
    assert '"success":false' in results[2].content
    assert "listing budget" in results[2].content
    assert '"success":true' in results[4].content


def test_missing_files_are_named(make_ctx) -> None:
    model = ScriptedModel(tools={"context": [tool_round(tool_call("read_file", file_path="ghost.py"))]})
    ctx = make_ctx(model)

    result = gather_context(ctx, HISTORY, ["utils.py"])

    assert not result.complete
    assert result.missing_files == ("ghost.py",)
    assert result.agent_message.startswith("Missing files: ghost.py could not be found in the workspace.")
    assert result.selected_files == ("utils.py",)


def test_unreadable_selection_is_reported_missing(make_ctx) -> None:
    ctx = make_ctx(ScriptedModel())

    result = gather_context(ctx, HISTORY, ["deleted.py", "utils.py"])

    assert result.missing_files == ("deleted.py",)
    assert result.selected_files == ("utils.py",)


def test_exhausted_loop_still_reports_status(make_ctx) -> None:
    search = lambda: tool_round(tool_call("search_files", pattern="*.py"))  # noqa: E731
    model = ScriptedModel(tools={"context": [search(), search(), search()]})
    ctx = make_ctx(model, max_tool_iterations=2)

    result = gather_context(ctx, HISTORY, ["utils.py"])

    assert not result.complete
    assert result.missing_files == ()
    assert result.agent_message.startswith("Context gathering stopped after 2 rounds")
    assert result.agent_message.endswith("Files in context: utils.py.")
