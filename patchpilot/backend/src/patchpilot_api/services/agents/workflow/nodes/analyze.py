from __future__ import annotations

from patchpilot_contracts.thread import ConversationMode, ThreadState, ThreadUpdate

from ..context_gather import gather_context
from ..runtime import TurnContext
from ..utils import read_prompt, system, to_chat_messages

_PROMPTS = {
    ConversationMode.codebase_chat: "analyze_codebase_chat.md",
    ConversationMode.change_request: "analyze_change_request.md",
    ConversationMode.validation_feedback: "analyze_validation_feedback.md",
}


def run_analyze(state: ThreadState, ctx: TurnContext) -> ThreadUpdate:
    """Gather code context, then answer the question or write the change plan."""

    mode = state.conversation_mode or ConversationMode.codebase_chat
    gathered = gather_context(ctx, state.messages, state.selected_files)

    previous = "\n".join(f"- {c}" for c in state.previous_changes) or "(none)"
    briefing = (
        f"Context status: {gathered.agent_message}\n\n"
        f"Previous changes made in this conversation:\n{previous}\n\n"
        f"Code context:\n\n{gathered.context or '(no files)'}"
    )

    ctx.log.thinking("Analyzing the request against the gathered code...")
    reply = ctx.stream_text(
        [system(read_prompt(_PROMPTS[mode])), system(briefing), *to_chat_messages(state.messages)],
        step=f"analyze.{mode.value}",
    )
    if mode is not ConversationMode.codebase_chat:
        ctx.log.public("Analysis complete. Changes needed:\n" + reply.content)

    return ThreadUpdate(
        messages=(*gathered.messages, reply),
        selected_files=gathered.selected_files,
        code_context=gathered.context,
    )
