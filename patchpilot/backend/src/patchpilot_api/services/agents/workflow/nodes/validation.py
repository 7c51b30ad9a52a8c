from __future__ import annotations

import logging

from patchpilot_contracts.thread import ConversationMode, Message, MessageRole, ThreadState, ThreadUpdate
from patchpilot_contracts.tools import Diagnostic

from ..runtime import TurnContext
from ..utils import latest_content, read_prompt, safe_truncate, system, user

logger = logging.getLogger(__name__)


def format_diagnostics(problems: dict[str, list[Diagnostic]]) -> str:
    text = "Diagnostics problems found:\n\n"
    for path, diagnostics in problems.items():
        text += f"File: {path}\n"
        for d in diagnostics:
            text += f"- {d.severity.value.capitalize()} at line {d.line}, column {d.col}: {d.message}\n"
        text += "\n"
    return text


def run_validation(state: ThreadState, ctx: TurnContext) -> ThreadUpdate:
    """Check diagnostics on the modified files.

    Problems send the turn back to Analyze (validation feedback) until the
    per-turn round limit is reached; a clean result ends with a short summary.
    """

    reverted = (
        ConversationMode.change_request
        if state.conversation_mode is ConversationMode.validation_feedback
        else state.conversation_mode
    )

    if not state.files_modified:
        ctx.log.internal("no files modified, nothing to validate")
        return ThreadUpdate(
            messages=(Message(role=MessageRole.assistant, content="No changes were applied."),),
            conversation_mode=reverted,
        )

    problems: dict[str, list[Diagnostic]] = {}
    for path in state.files_modified:
        ctx.check_cancelled()
        found = ctx.diagnostics.diagnostics_for(path)
        if found:
            ctx.log.internal(f"{len(found)} diagnostic(s) in {path}")
            problems[path] = found

    if problems:
        report = format_diagnostics(problems)
        if state.validation_rounds < ctx.settings.max_validation_rounds:
            ctx.log.thinking("Validation found problems; going back to analysis.")
            return ThreadUpdate(
                messages=(Message(role=MessageRole.system, content=report),),
                conversation_mode=ConversationMode.validation_feedback,
                validation_rounds=state.validation_rounds + 1,
            )
        logger.info(
            "workflow.validation rounds_exhausted thread_id=%s rounds=%s", ctx.thread_id, state.validation_rounds
        )
        ctx.log.error("Validation problems remain after the maximum number of fix rounds.")
        return ThreadUpdate(
            messages=(
                Message(
                    role=MessageRole.assistant,
                    content=f"I could not resolve every problem in my changes.\n\n{report}",
                ),
            ),
            conversation_mode=reverted,
        )

    request = latest_content(state.messages, MessageRole.human)
    summary = ctx.stream_text(
        [
            system(read_prompt("validation_summary.md")),
            user(f"Request:\n{request}\n\nDiff:\n{safe_truncate(state.diff, max_chars=20_000)}"),
        ],
        step="validation.summary",
    )
    return ThreadUpdate(messages=(summary,), conversation_mode=reverted)
