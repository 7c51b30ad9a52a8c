"""Deterministic offline model (LLM_MODE=stub).

Lets the service run end to end without an API key: mode classification uses
keyword heuristics, text steps return canned output, and tool loops finish
immediately without calling tools (so stub turns never modify files).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator, Sequence, TypeVar

from pydantic import BaseModel

from .client import ChatMessage, LLMClientError, ModelReply, ToolSpec

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_CHANGE_SIGNALS = (
    "fix",
    "add ",
    "rename",
    "refactor",
    "change",
    "update",
    "remove",
    "delete",
    "create",
    "implement",
    "replace",
    "write ",
)

_CODE_SIGNALS = (
    "this code",
    "this function",
    "this file",
    "codebase",
    "function",
    "class ",
    "module",
    ".py",
    ".ts",
    ".js",
    "traceback",
    "error",
)

_CANNED: dict[str, str] = {
    "preanalysis.general": "(stub) Happy to help. Configure LLM_MODE=openai for real answers.",
    "preanalysis.ack": "Let me take a look at the relevant code.",
    "analyze": "(stub) No analysis available in stub mode.",
    "generate": "(stub) No changes proposed in stub mode.",
    "validation.summary": "I applied the requested changes.",
    "commit_message": "Apply requested changes",
}


def _last_human_text(messages: Sequence[ChatMessage]) -> str:
    for m in reversed(messages):
        if m.get("role") == "user":
            return str(m.get("content") or "")
    return ""


def classify_heuristic(text: str) -> str:
    q = (text or "").strip().lower()
    if any(s in q for s in _CHANGE_SIGNALS):
        return "change_request"
    if any(s in q for s in _CODE_SIGNALS):
        return "codebase_chat"
    return "general_chat"


class StubChatModel:
    def _log(self, step: str, output: str, t0: float) -> None:
        logger.info(
            "llm.call end provider=stub step=%s elapsed_ms=%s output_chars=%s",
            step,
            int((time.perf_counter() - t0) * 1000),
            len(output),
        )

    def invoke(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> str:
        t0 = time.perf_counter()
        logger.info("llm.call start provider=stub step=%s messages=%s", step, len(messages))
        base = step.split(".", 1)[0]
        out = _CANNED.get(step) or _CANNED.get(base) or "(stub)"
        self._log(step, out, t0)
        return out

    def stream(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> Iterator[str]:
        text = self.invoke(messages, step=step, temperature=temperature)
        for i, word in enumerate(text.split(" ")):
            yield word if i == 0 else " " + word

    def invoke_structured(self, messages: Sequence[ChatMessage], schema: type[M], *, step: str) -> M:
        t0 = time.perf_counter()
        logger.info("llm.call start provider=stub step=%s messages=%s", step, len(messages))
        data: dict[str, Any]
        if "conversation_mode" in schema.model_fields:
            data = {"conversation_mode": classify_heuristic(_last_human_text(messages))}
        else:
            raise LLMClientError(f"Stub model has no structured output for {schema.__name__}")
        out = schema.model_validate(data)
        self._log(step, out.model_dump_json(), t0)
        return out

    def invoke_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec],
        *,
        step: str,
        temperature: float = 0.0,
    ) -> ModelReply:
        t0 = time.perf_counter()
        logger.info("llm.call start provider=stub step=%s messages=%s tools=%s", step, len(messages), len(tools))
        content = "Context gathering complete." if step.startswith("context") else "No changes applied."
        self._log(step, content, t0)
        return ModelReply(content=content)
