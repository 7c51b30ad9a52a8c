from __future__ import annotations

from pathlib import Path
from typing import Sequence

from patchpilot_contracts.thread import Message, MessageRole

from ...llm.client import ChatMessage

_ROLE_MAP = {
    MessageRole.human: "user",
    MessageRole.assistant: "assistant",
    MessageRole.system: "system",
}


def read_prompt(name: str) -> str:
    base = Path(__file__).resolve().parent / "prompts"
    path = base / name
    return path.read_text(encoding="utf-8")


def safe_truncate(s: str, *, max_chars: int = 40_000) -> str:
    if not s:
        return ""
    if len(s) <= max_chars:
        return s
    tail_chars = min(2000, max_chars // 4)
    head = s[: max_chars - tail_chars]
    tail = s[-tail_chars:]
    return head + "\n\n...<truncated>...\n\n" + tail


def system(content: str) -> ChatMessage:
    return {"role": "system", "content": content}


def user(content: str) -> ChatMessage:
    return {"role": "user", "content": content}


def to_chat_messages(messages: Sequence[Message], *, max_tool_chars: int = 2000) -> list[ChatMessage]:
    """Convert thread messages to chat-completion messages.

    Tool results are folded into assistant text: the tool-call turns that
    produced them are not part of the thread history, and a bare `tool`
    message is rejected by the chat API.
    """

    out: list[ChatMessage] = []
    for m in messages:
        if m.role is MessageRole.tool:
            out.append(
                {
                    "role": "assistant",
                    "content": f"[{m.tool_name or 'tool'} result] " + safe_truncate(m.content, max_chars=max_tool_chars),
                }
            )
            continue
        out.append({"role": _ROLE_MAP[m.role], "content": m.content})
    return out


def latest(messages: Sequence[Message], role: MessageRole) -> Message | None:
    for m in reversed(messages):
        if m.role is role:
            return m
    return None


def latest_content(messages: Sequence[Message], role: MessageRole) -> str:
    m = latest(messages, role)
    return m.content if m is not None else ""


def format_file_block(path: str, content: str) -> str:
    return f"{path}\n```\n{content}\n```\n\n"
