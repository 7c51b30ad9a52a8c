from __future__ import annotations

from patchpilot_contracts.thread import ConversationMode, ThreadState, ThreadUpdate

from ..classifier import classify
from ..runtime import TurnContext
from ..utils import read_prompt, system, to_chat_messages


def run_preanalysis(state: ThreadState, ctx: TurnContext) -> ThreadUpdate:
    """Classify the turn, then either answer (general chat) or acknowledge."""

    ctx.check_cancelled()
    mode = classify(ctx.model, state.messages)
    ctx.log.thinking(f"Conversation mode: {mode.value}")

    history = to_chat_messages(state.messages)
    if mode is ConversationMode.general_chat:
        reply = ctx.stream_text(
            [system(read_prompt("general_chat.md")), *history],
            step="preanalysis.general",
            temperature=0.7,
        )
    else:
        reply = ctx.stream_text(
            [system(read_prompt("preanalysis_ack.md")), *history],
            step="preanalysis.ack",
            temperature=0.2,
        )
    return ThreadUpdate(messages=(reply,), conversation_mode=mode)
