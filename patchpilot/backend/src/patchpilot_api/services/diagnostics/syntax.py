"""Diagnostics collaborator.

`SyntaxDiagnostics` is a dependency-free stand-in for a language server: it
reports Python syntax errors and JSON parse errors. Other file types (and
files that no longer exist) report no diagnostics.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from patchpilot_contracts.tools import Diagnostic, DiagnosticSeverity

logger = logging.getLogger(__name__)


class DiagnosticsSource(Protocol):
    def diagnostics_for(self, path: str) -> list[Diagnostic]:
        ...


def _python_diagnostics(source: str, filename: str) -> list[Diagnostic]:
    try:
        compile(source, filename, "exec", dont_inherit=True)
    except SyntaxError as e:
        return [
            Diagnostic(
                severity=DiagnosticSeverity.error,
                line=max(e.lineno or 1, 1),
                col=max(e.offset or 1, 1),
                message=e.msg or "invalid syntax",
            )
        ]
    except ValueError as e:
        # e.g. source containing null bytes
        return [Diagnostic(severity=DiagnosticSeverity.error, line=1, col=1, message=str(e))]
    return []


def _json_diagnostics(source: str) -> list[Diagnostic]:
    try:
        json.loads(source)
    except json.JSONDecodeError as e:
        return [Diagnostic(severity=DiagnosticSeverity.error, line=max(e.lineno, 1), col=max(e.colno, 1), message=e.msg)]
    return []


class SyntaxDiagnostics:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def diagnostics_for(self, path: str) -> list[Diagnostic]:
        full = (self.root / path).resolve()
        if self.root not in full.parents or not full.is_file():
            return []
        try:
            source = full.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            return [Diagnostic(severity=DiagnosticSeverity.error, line=1, col=1, message=f"not valid UTF-8: {e.reason}")]

        suffix = full.suffix.lower()
        if suffix == ".py":
            out = _python_diagnostics(source, path)
        elif suffix == ".json":
            out = _json_diagnostics(source)
        else:
            out = []
        logger.debug("diagnostics.check path=%s count=%s", path, len(out))
        return out
