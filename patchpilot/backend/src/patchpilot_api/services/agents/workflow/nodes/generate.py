from __future__ import annotations

import logging

from patchpilot_contracts.thread import MessageRole, ThreadState, ThreadUpdate

from ..runtime import TurnContext
from ..tools.file_tools import apply_tools
from ..tools.toolkit import ToolExecutor, run_tool_loop
from ..utils import latest_content, read_prompt, system, user

logger = logging.getLogger(__name__)

_WRITE_TOOLS = frozenset({"edit_file", "create_file", "replace_file"})


def run_generate(state: ThreadState, ctx: TurnContext) -> ThreadUpdate:
    """Propose changes from the latest analysis, then apply them with tools.

    Only the latest analysis message and the code context are sent to the
    model, not the whole conversation.
    """

    analysis = latest_content(state.messages, MessageRole.assistant)
    ctx.log.thinking("Generating code changes...")
    proposal = ctx.stream_text(
        [
            system(read_prompt("generate.md")),
            user(f"Change plan:\n{analysis}\n\nCode context:\n\n{state.code_context or '(no files)'}"),
        ],
        step="generate",
    )

    ctx.log.thinking("Applying the proposed changes...")
    apply_messages = [system(read_prompt("apply_changes.md")), user(proposal.content)]
    outcome = run_tool_loop(ctx, apply_messages, ToolExecutor(apply_tools(ctx.files)), step="generate.apply")

    modified: list[str] = []
    for record in outcome.records:
        if record.call.name in _WRITE_TOOLS and record.result.success and record.result.file_path not in modified:
            modified.append(record.result.file_path)
    failed = [r for r in outcome.records if not r.result.success]
    if failed:
        ctx.log.internal(f"{len(failed)} tool call(s) failed during apply")
    if outcome.exhausted:
        ctx.log.error(f"Applying changes stopped after {ctx.settings.max_tool_iterations} rounds")

    diff = ctx.vcs.diff() if modified else ""
    if diff:
        ctx.log.diff(diff)
    elif modified:
        # writes that leave the tree identical to HEAD are not a change
        ctx.log.internal(f"writes left no net change: {', '.join(modified)}")
        modified = []
    logger.info("workflow.generate thread_id=%s files_modified=%s", ctx.thread_id, modified)

    return ThreadUpdate(
        messages=(proposal, *outcome.messages),
        files_modified=tuple(modified),
        diff=diff,
    )
