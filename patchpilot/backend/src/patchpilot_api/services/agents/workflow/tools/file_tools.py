"""File tools exposed to the model.

Every tool returns a `ToolResult` and never raises for expected failures
(missing file, patch mismatch, path outside the workspace, write error), so
the tool loop can hand the failure back to the model.

- `edit_file`: apply a unified diff; the diff is relocated against the
  current file first. A missing file is treated as empty.
- `create_file`: write full content; the file must not exist.
- `replace_file`: write full content; the file must exist.
- `read_file`, `list_directory`, `search_files`: read-only context tools.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from patchpilot_contracts.tools import ToolResult

from ....files.workspace import FileAccess
from ..results import Failure, Ok
from .diff_repair import repair
from .patching import apply_patch, parse_unified_diff, select_file_patch
from .toolkit import Tool

logger = logging.getLogger(__name__)


class EditFileArgs(BaseModel):
    file_path: str = Field(..., description="Workspace-relative path of the file to modify")
    diff: str = Field(..., description="Unified diff for this file (---/+++ headers and @@ hunks)")


class WriteFileArgs(BaseModel):
    file_path: str = Field(..., description="Workspace-relative path of the file")
    content: str = Field(..., description="Complete file content")


class ReadFileArgs(BaseModel):
    file_path: str = Field(..., description="Workspace-relative path of the file to read")


class ListDirectoryArgs(BaseModel):
    path: str = Field(default=".", description="Workspace-relative directory; '.' for the root")


class SearchFilesArgs(BaseModel):
    pattern: str = Field(..., description="Glob pattern, e.g. '*.py' or 'src/**/utils.py'")
    exclude: str | None = Field(default=None, description="Glob of paths to leave out")
    max_results: int | None = Field(default=50, ge=1, le=500)


def _failed(file_path: str, failure: Failure) -> ToolResult:
    return ToolResult(success=False, message=str(failure), file_path=file_path)


def edit_file(files: FileAccess, file_path: str, diff: str) -> ToolResult:
    try:
        current = files.read(file_path)
    except ValueError as e:
        return ToolResult(success=False, message=f"precondition_failed: {e}", file_path=file_path)

    patch_text = diff
    if current is not None:
        repaired = repair(current.split("\n"), diff, file_path)
        if isinstance(repaired, Failure):
            return _failed(file_path, repaired)
        patch_text = repaired.value

    parsed = parse_unified_diff(patch_text)
    if isinstance(parsed, Failure):
        return _failed(file_path, parsed)
    chosen = select_file_patch(parsed.value, file_path)
    if isinstance(chosen, Failure):
        return _failed(file_path, chosen)

    applied = apply_patch(current or "", chosen.value)
    if isinstance(applied, Failure):
        return _failed(file_path, applied)

    try:
        files.write(file_path, applied.value)
    except OSError as e:
        return ToolResult(success=False, message=f"write_failed: {e}", file_path=file_path)
    logger.info("tools.edit_file path=%s hunks=%s", file_path, len(chosen.value.hunks))
    return ToolResult(success=True, message="Successfully applied diff to file", file_path=file_path)


def create_file(files: FileAccess, file_path: str, content: str) -> ToolResult:
    try:
        files.create_new(file_path, content)
    except FileExistsError:
        return ToolResult(
            success=False,
            message=f"precondition_failed: {file_path} already exists; use edit_file or replace_file",
            file_path=file_path,
        )
    except ValueError as e:
        return ToolResult(success=False, message=f"precondition_failed: {e}", file_path=file_path)
    except OSError as e:
        return ToolResult(success=False, message=f"write_failed: {e}", file_path=file_path)
    return ToolResult(success=True, message="Successfully created file", file_path=file_path)


def replace_file(files: FileAccess, file_path: str, content: str) -> ToolResult:
    try:
        if not files.exists(file_path):
            return ToolResult(
                success=False,
                message=f"precondition_failed: {file_path} does not exist; use create_file",
                file_path=file_path,
            )
        files.write(file_path, content)
    except ValueError as e:
        return ToolResult(success=False, message=f"precondition_failed: {e}", file_path=file_path)
    except OSError as e:
        return ToolResult(success=False, message=f"write_failed: {e}", file_path=file_path)
    return ToolResult(success=True, message="Successfully replaced file contents", file_path=file_path)


def read_file(files: FileAccess, file_path: str) -> ToolResult:
    try:
        content = files.read(file_path)
    except ValueError as e:
        return ToolResult(success=False, message=f"precondition_failed: {e}", file_path=file_path)
    except (OSError, UnicodeDecodeError) as e:
        return ToolResult(success=False, message=f"not_found: cannot read {file_path}: {e}", file_path=file_path)
    if content is None:
        return ToolResult(success=False, message=f"not_found: File {file_path} not found", file_path=file_path)
    return ToolResult(success=True, message="File read", file_path=file_path, content=content)


def list_directory(files: FileAccess, path: str) -> ToolResult:
    try:
        entries = files.list_dir(path)
    except ValueError as e:
        return ToolResult(success=False, message=f"precondition_failed: {e}", file_path=path)
    except (FileNotFoundError, NotADirectoryError):
        return ToolResult(success=False, message=f"not_found: Directory {path} not found", file_path=path)
    results = [e.path + ("/" if e.kind.value == "directory" else "") for e in entries]
    return ToolResult(success=True, message=f"{len(results)} entries", file_path=path, results=results)


def search_files(files: FileAccess, pattern: str, exclude: str | None = None, max_results: int | None = None) -> ToolResult:
    try:
        found = files.search(pattern, exclude, max_results)
    except ValueError as e:
        return ToolResult(success=False, message=f"precondition_failed: {e}", file_path=pattern)
    return ToolResult(success=True, message=f"{len(found)} files match", file_path=pattern, results=found)


def apply_tools(files: FileAccess) -> list[Tool]:
    """Write tools used by Generate's apply loop."""

    return [
        Tool(
            name="edit_file",
            description="Apply a unified diff to a file. Line numbers in @@ headers are corrected automatically.",
            args_model=EditFileArgs,
            handler=lambda a: edit_file(files, a.file_path, a.diff),
        ),
        Tool(
            name="create_file",
            description="Create a new file with the given content. Fails if the file already exists.",
            args_model=WriteFileArgs,
            handler=lambda a: create_file(files, a.file_path, a.content),
        ),
        Tool(
            name="replace_file",
            description="Replace the entire content of an existing file. Fails if the file does not exist.",
            args_model=WriteFileArgs,
            handler=lambda a: replace_file(files, a.file_path, a.content),
        ),
    ]
