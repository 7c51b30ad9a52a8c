"""Tool and diagnostics contracts.

Tool results are returned to the model as JSON, never raised, so a tool loop
can feed a failure back and let the model correct itself.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    success: bool
    message: str
    # Named file_path for every tool (search tools put the pattern here).
    file_path: str
    content: str | None = None
    results: list[str] = Field(default_factory=list)


class EntryKind(str, Enum):
    file = "file"
    directory = "directory"


class DirectoryEntry(BaseModel):
    path: str
    kind: EntryKind


class DiagnosticSeverity(str, Enum):
    error = "error"
    warning = "warning"
    info = "info"
    hint = "hint"


class Diagnostic(BaseModel):
    severity: DiagnosticSeverity
    # 1-based.
    line: int = Field(..., ge=1)
    col: int = Field(..., ge=1)
    message: str
