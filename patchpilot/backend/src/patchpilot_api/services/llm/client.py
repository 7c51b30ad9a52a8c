from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterator, Protocol, Sequence, TypeVar
from urllib.parse import urlparse

from openai import OpenAI
from pydantic import BaseModel, ValidationError

from ..settings.config import EngineSettings

logger = logging.getLogger(__name__)

ChatMessage = dict[str, Any]

M = TypeVar("M", bound=BaseModel)

# Cheap, latency-sensitive steps run on the small model; everything else on the big one.
_SMALL_MODEL_STEPS = frozenset({"classify", "preanalysis.ack"})


class LLMClientError(RuntimeError):
    """Raised when the LLM client cannot generate a response."""

    code = "llm_error"


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ToolCall:
    call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelReply:
    content: str
    tool_calls: tuple[ToolCall, ...] = ()


class LanguageModel(Protocol):
    """Language model collaborator.

    Every call names its `step` (e.g. "classify", "analyze", "generate.apply");
    implementations use it for logging and model selection.
    """

    def invoke(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> str:
        ...

    def stream(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> Iterator[str]:
        ...

    def invoke_structured(self, messages: Sequence[ChatMessage], schema: type[M], *, step: str) -> M:
        ...

    def invoke_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec],
        *,
        step: str,
        temperature: float = 0.0,
    ) -> ModelReply:
        ...


def extract_json_object(text: str) -> str:
    """Best-effort extraction of a single JSON object from model output.

    Handles common cases:
    - wrapped in ```json fences
    - leading/trailing prose

    This does NOT attempt to repair invalid JSON.
    """

    s = (text or "").strip()

    fence = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", s, flags=re.DOTALL | re.IGNORECASE)
    if fence:
        return fence.group(1).strip()

    start = s.find("{")
    end = s.rfind("}")
    if start != -1 and end != -1 and end > start:
        return s[start : end + 1].strip()

    return s


def _parse_tool_arguments(raw: str | None) -> dict[str, Any]:
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError:
        logger.warning("llm.tool_args invalid_json chars=%s", len(raw or ""))
        return {}
    return args if isinstance(args, dict) else {}


class OpenAIChatModel:
    """`LanguageModel` backed by the OpenAI chat completions API (or a compatible proxy)."""

    def __init__(self, settings: EngineSettings) -> None:
        if not settings.openai_api_key:
            raise LLMClientError("OPENAI_API_KEY is required when LLM_MODE=openai")
        self._settings = settings
        self._client = OpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
        self._host: str | None = None
        if settings.openai_base_url:
            self._host = urlparse(settings.openai_base_url).hostname

    def _model_for(self, step: str) -> str:
        if step in _SMALL_MODEL_STEPS:
            return self._settings.small_model
        return self._settings.big_model

    def _maybe_log_output(self, *, step: str, content: str) -> None:
        """Optionally log model output for debugging (LLM_LOG_OUTPUT=1).

        NOTE: this logs raw model output; do not enable in environments where prompts
        or code may contain secrets.
        """

        if not self._settings.log_model_output:
            return
        preview = (content or "").strip()
        if len(preview) > 4000:
            preview = preview[:3500] + "\n...<truncated>...\n" + preview[-400:]
        logger.info("llm.step_output step=%s chars=%s\n%s", step, len(content or ""), preview)

    def _create(self, messages: Sequence[ChatMessage], *, step: str, **kwargs: Any) -> Any:
        model = self._model_for(step)
        t0 = time.perf_counter()
        logger.info(
            "llm.call start provider=openai model=%s host=%s step=%s messages=%s",
            model,
            self._host,
            step,
            len(messages),
        )
        try:
            resp = self._client.chat.completions.create(model=model, messages=list(messages), **kwargs)
        except Exception as e:
            logger.warning("llm.call failed provider=openai model=%s step=%s error=%s", model, step, e)
            raise LLMClientError(f"Model call failed at step {step}: {e}") from e

        usage = getattr(resp, "usage", None)
        logger.info(
            "llm.call end provider=openai model=%s step=%s elapsed_ms=%s prompt_tokens=%s completion_tokens=%s",
            model,
            step,
            int((time.perf_counter() - t0) * 1000),
            getattr(usage, "prompt_tokens", None),
            getattr(usage, "completion_tokens", None),
        )
        return resp

    def invoke(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> str:
        resp = self._create(messages, step=step, temperature=temperature)
        content = (resp.choices[0].message.content or "").strip()
        self._maybe_log_output(step=step, content=content)
        return content

    def stream(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> Iterator[str]:
        model = self._model_for(step)
        logger.info("llm.stream start provider=openai model=%s step=%s messages=%s", model, step, len(messages))
        t0 = time.perf_counter()
        total = 0
        try:
            chunks = self._client.chat.completions.create(
                model=model,
                messages=list(messages),
                temperature=temperature,
                stream=True,
            )
            for chunk in chunks:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    total += len(delta)
                    yield delta
        except Exception as e:
            logger.warning("llm.stream failed provider=openai model=%s step=%s error=%s", model, step, e)
            raise LLMClientError(f"Model stream failed at step {step}: {e}") from e
        logger.info(
            "llm.stream end provider=openai model=%s step=%s elapsed_ms=%s output_chars=%s",
            model,
            step,
            int((time.perf_counter() - t0) * 1000),
            total,
        )

    def invoke_structured(self, messages: Sequence[ChatMessage], schema: type[M], *, step: str) -> M:
        instruction = {
            "role": "system",
            "content": (
                "Respond with a single JSON object that validates against this JSON schema:\n"
                + json.dumps(schema.model_json_schema(), ensure_ascii=False)
            ),
        }
        resp = self._create(
            [*messages, instruction],
            step=step,
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        raw = extract_json_object(resp.choices[0].message.content or "")
        self._maybe_log_output(step=step, content=raw)
        try:
            return schema.model_validate_json(raw)
        except ValidationError as e:
            raise LLMClientError(f"Model output failed {schema.__name__} validation at step {step}: {e}") from e

    def invoke_tools(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolSpec],
        *,
        step: str,
        temperature: float = 0.0,
    ) -> ModelReply:
        resp = self._create(
            messages,
            step=step,
            temperature=temperature,
            tools=[t.to_openai() for t in tools],
        )
        msg = resp.choices[0].message
        calls = tuple(
            ToolCall(call_id=c.id, name=c.function.name, arguments=_parse_tool_arguments(c.function.arguments))
            for c in (msg.tool_calls or [])
        )
        content = (msg.content or "").strip()
        self._maybe_log_output(step=step, content=content)
        return ModelReply(content=content, tool_calls=calls)


def build_language_model(settings: EngineSettings) -> LanguageModel:
    """Pick the model implementation for `settings.llm_mode` (stub unless openai)."""

    if settings.llm_mode == "openai":
        return OpenAIChatModel(settings)

    from .stub import StubChatModel

    if settings.llm_mode != "stub":
        logger.warning("llm.mode unknown=%s falling_back=stub", settings.llm_mode)
    return StubChatModel()
