"""Tool registry and the bounded tool-use loop shared by Analyze and Generate."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel, ValidationError

from patchpilot_contracts.events import ToolEndEvent
from patchpilot_contracts.thread import Message, MessageRole
from patchpilot_contracts.tools import ToolResult

from ....llm.client import ChatMessage, ModelReply, ToolCall, ToolSpec
from ..runtime import TurnContext

logger = logging.getLogger(__name__)

ToolHandler = Callable[[BaseModel], ToolResult]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler

    @property
    def spec(self) -> ToolSpec:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return ToolSpec(name=self.name, description=self.description, parameters=schema)


class ToolExecutor:
    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for t in tools or []:
            self.register(t)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool
        logger.debug("tools.register name=%s", tool.name)

    @property
    def specs(self) -> list[ToolSpec]:
        return [t.spec for t in self._tools.values()]

    def execute(self, call: ToolCall) -> ToolResult:
        tool = self._tools.get(call.name)
        if tool is None:
            return ToolResult(success=False, message=f"Tool '{call.name}' not found.", file_path="")
        try:
            args = tool.args_model.model_validate(call.arguments)
        except ValidationError as e:
            return ToolResult(
                success=False,
                message=f"Invalid arguments for {call.name}: {e.error_count()} error(s): {e.errors()[0]['msg']}",
                file_path=str(call.arguments.get("file_path") or call.arguments.get("path") or ""),
            )
        return tool.handler(args)


@dataclass(frozen=True)
class ToolRecord:
    call: ToolCall
    result: ToolResult


@dataclass(frozen=True)
class ToolLoopOutcome:
    final_content: str
    records: tuple[ToolRecord, ...] = ()
    messages: tuple[Message, ...] = field(default=())
    exhausted: bool = False


def assistant_tool_message(reply: ModelReply) -> ChatMessage:
    return {
        "role": "assistant",
        "content": reply.content or None,
        "tool_calls": [
            {
                "id": c.call_id,
                "type": "function",
                "function": {"name": c.name, "arguments": json.dumps(c.arguments, ensure_ascii=False)},
            }
            for c in reply.tool_calls
        ],
    }


def tool_result_message(call: ToolCall, result: ToolResult) -> ChatMessage:
    return {"role": "tool", "tool_call_id": call.call_id, "content": result.model_dump_json(exclude_none=True)}


def run_tool_loop(
    ctx: TurnContext,
    messages: list[ChatMessage],
    executor: ToolExecutor,
    *,
    step: str,
) -> ToolLoopOutcome:
    """Call the model with tools until it answers without tool calls.

    Bounded by `settings.max_tool_iterations` model rounds. `messages` is
    extended in place with the assistant/tool exchange.
    """

    records: list[ToolRecord] = []
    thread_messages: list[Message] = []
    specs = executor.specs
    for round_no in range(1, ctx.settings.max_tool_iterations + 1):
        ctx.check_cancelled()
        reply = ctx.model.invoke_tools(messages, specs, step=step)
        if not reply.tool_calls:
            logger.info("tools.loop done step=%s rounds=%s calls=%s", step, round_no, len(records))
            return ToolLoopOutcome(
                final_content=reply.content,
                records=tuple(records),
                messages=tuple(thread_messages),
            )

        messages.append(assistant_tool_message(reply))
        for call in reply.tool_calls:
            ctx.check_cancelled()
            result = executor.execute(call)
            content = result.model_dump_json(exclude_none=True)
            messages.append(tool_result_message(call, result))
            records.append(ToolRecord(call=call, result=result))
            thread_messages.append(
                Message(role=MessageRole.tool, content=content, tool_name=call.name, tool_call_id=call.call_id)
            )
            ctx.emit(
                ToolEndEvent(
                    thread_id=ctx.thread_id,
                    node=ctx.node,
                    tool_name=call.name,
                    content=content,
                    call_id=call.call_id,
                )
            )
            status = "ok" if result.success else "failed"
            ctx.log.tool(f"{call.name} {result.file_path} {status}: {result.message}")

    logger.warning("tools.loop exhausted step=%s rounds=%s", step, ctx.settings.max_tool_iterations)
    return ToolLoopOutcome(
        final_content="",
        records=tuple(records),
        messages=tuple(thread_messages),
        exhausted=True,
    )
