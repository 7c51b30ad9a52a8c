"""Context-gather loop run by Analyze.

A bounded tool loop (read / list / search) decides which files beyond the
user's selection are needed. The listing guard is enforced here: once
`max_list_calls` directory listings have been made without a file read in
between, further listings fail until the model reads a file.

The result always carries a definite status: complete, or the explicit list
of files that could not be located.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from patchpilot_contracts.thread import Message
from patchpilot_contracts.tools import ToolResult

from .runtime import TurnContext
from .tools.file_tools import (
    ListDirectoryArgs,
    ReadFileArgs,
    SearchFilesArgs,
    list_directory,
    read_file,
    search_files,
)
from .tools.toolkit import Tool, ToolExecutor, run_tool_loop
from .utils import format_file_block, read_prompt, safe_truncate, system, to_chat_messages, user

logger = logging.getLogger(__name__)

_MAX_CHARS_PER_FILE = 12_000


@dataclass(frozen=True)
class GatherResult:
    context: str
    selected_files: tuple[str, ...]
    agent_message: str
    complete: bool
    missing_files: tuple[str, ...] = ()
    messages: tuple[Message, ...] = ()


class _ListingGuard:
    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0

    def on_read(self) -> None:
        self.used = 0

    def allow_listing(self) -> bool:
        if self.used >= self.limit:
            return False
        self.used += 1
        return True


class _GatherSession:
    """Tool handlers plus the bookkeeping of what was found and what was not."""

    def __init__(self, ctx: TurnContext, selected: Sequence[str]) -> None:
        self._ctx = ctx
        self.guard = _ListingGuard(ctx.settings.max_list_calls)
        self.selected: list[str] = list(selected)
        self.missing: list[str] = []

    def read(self, args: ReadFileArgs) -> ToolResult:
        self.guard.on_read()
        result = read_file(self._ctx.files, args.file_path)
        if result.success:
            if args.file_path not in self.selected:
                self.selected.append(args.file_path)
                self._ctx.log.thinking(f"Adding file to context: {args.file_path}")
            if args.file_path in self.missing:
                self.missing.remove(args.file_path)
        elif args.file_path not in self.missing and args.file_path not in self.selected:
            self.missing.append(args.file_path)
        # Content goes into the code context; the model only needs to know the read worked.
        return result.model_copy(update={"content": safe_truncate(result.content or "", max_chars=4000) or None})

    def list(self, args: ListDirectoryArgs) -> ToolResult:
        if not self.guard.allow_listing():
            return ToolResult(
                success=False,
                message=(
                    f"precondition_failed: directory listing budget spent ({self.guard.limit} listings "
                    "without a file read). Read a file, search, or finish."
                ),
                file_path=args.path,
            )
        return list_directory(self._ctx.files, args.path)

    def search(self, args: SearchFilesArgs) -> ToolResult:
        return search_files(self._ctx.files, args.pattern, args.exclude, args.max_results)

    def executor(self) -> ToolExecutor:
        return ToolExecutor(
            [
                Tool("read_file", "Read a workspace file.", ReadFileArgs, self.read),
                Tool("list_directory", "List the entries of a workspace directory.", ListDirectoryArgs, self.list),
                Tool("search_files", "Find workspace files by glob pattern.", SearchFilesArgs, self.search),
            ]
        )


def _build_context(ctx: TurnContext, paths: Sequence[str]) -> tuple[str, list[str], list[str]]:
    parts: list[str] = []
    found: list[str] = []
    missing: list[str] = []
    for path in paths:
        result = read_file(ctx.files, path)
        if not result.success or result.content is None:
            ctx.log.internal(f"cannot read {path}: {result.message}")
            missing.append(path)
            continue
        found.append(path)
        parts.append(format_file_block(path, safe_truncate(result.content, max_chars=_MAX_CHARS_PER_FILE)))
    return "".join(parts), found, missing


def gather_context(ctx: TurnContext, history: Sequence[Message], already_selected: Sequence[str]) -> GatherResult:
    session = _GatherSession(ctx, already_selected)

    listing = ", ".join(already_selected) if already_selected else "(none)"
    messages = [
        system(read_prompt("context_gather.md")),
        *to_chat_messages(history),
        user(
            f"Already selected files: {listing}\n"
            f"Directory listings allowed between file reads: {ctx.settings.max_list_calls}"
        ),
    ]
    ctx.log.thinking("Gathering code context...")
    outcome = run_tool_loop(ctx, messages, session.executor(), step="context")

    context, found, unreadable = _build_context(ctx, session.selected)
    missing = list(dict.fromkeys([*unreadable, *session.missing]))

    if missing:
        agent_message = "Missing files: " + ", ".join(missing) + " could not be found in the workspace."
    elif outcome.exhausted:
        agent_message = (
            f"Context gathering stopped after {ctx.settings.max_tool_iterations} rounds; "
            "continuing with the files gathered so far."
        )
    else:
        agent_message = "Context gathering complete."
    if found:
        agent_message += " Files in context: " + ", ".join(found) + "."

    complete = not missing and not outcome.exhausted
    logger.info(
        "workflow.context thread_id=%s files=%s missing=%s complete=%s",
        ctx.thread_id,
        len(found),
        len(missing),
        complete,
    )
    if outcome.final_content:
        ctx.log.internal(f"context agent: {outcome.final_content}")
    ctx.log.thinking(agent_message)

    return GatherResult(
        context=context,
        selected_files=tuple(found),
        agent_message=agent_message,
        complete=complete,
        missing_files=tuple(missing),
        messages=outcome.messages,
    )
