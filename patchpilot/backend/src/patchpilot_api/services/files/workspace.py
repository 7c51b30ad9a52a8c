"""File access collaborator.

All paths are workspace-relative POSIX strings. Paths that resolve outside the
workspace root are rejected with `ValueError`.

Error behavior:
- `read()` returns None when the file does not exist.
- `list_dir()` raises `FileNotFoundError` / `NotADirectoryError`.
- `create_new()` raises `FileExistsError` when the target exists.
- write failures surface as `OSError`.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Protocol

from patchpilot_contracts.tools import DirectoryEntry, EntryKind

logger = logging.getLogger(__name__)

_IGNORED_DIRS = frozenset({".git", "__pycache__", "node_modules", ".venv", ".mypy_cache", ".pytest_cache"})


class FileAccess(Protocol):
    def read(self, path: str) -> str | None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def list_dir(self, path: str) -> list[DirectoryEntry]:
        ...

    def search(self, pattern: str, exclude: str | None = None, max_results: int | None = None) -> list[str]:
        ...

    def write(self, path: str, content: str) -> None:
        ...

    def create_new(self, path: str, content: str) -> None:
        ...

    def delete(self, path: str) -> None:
        ...


def _is_ignored(rel: str) -> bool:
    return any(part in _IGNORED_DIRS for part in rel.split("/"))


class LocalWorkspace:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, path: str) -> Path:
        raw = (path or "").strip().replace("\\", "/")
        if not raw:
            raise ValueError("empty path")
        candidate = Path(raw)
        full = (candidate if candidate.is_absolute() else self.root / candidate).resolve()
        if full != self.root and self.root not in full.parents:
            raise ValueError(f"path is outside the workspace: {path}")
        return full

    def relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def read(self, path: str) -> str | None:
        full = self.resolve(path)
        if not full.is_file():
            return None
        return full.read_text(encoding="utf-8")

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def list_dir(self, path: str) -> list[DirectoryEntry]:
        full = self.resolve(path or ".")
        if not full.exists():
            raise FileNotFoundError(path)
        if not full.is_dir():
            raise NotADirectoryError(path)

        entries: list[DirectoryEntry] = []
        for child in sorted(full.iterdir(), key=lambda p: p.name):
            if child.name in _IGNORED_DIRS:
                continue
            kind = EntryKind.directory if child.is_dir() else EntryKind.file
            entries.append(DirectoryEntry(path=self.relative(child), kind=kind))
        return entries

    def search(self, pattern: str, exclude: str | None = None, max_results: int | None = None) -> list[str]:
        """Glob for files under the root.

        A pattern without a slash matches file names at any depth.
        """

        pat = (pattern or "").strip().replace("\\", "/")
        if not pat:
            return []
        if "/" not in pat and not pat.startswith("**"):
            pat = "**/" + pat

        out: list[str] = []
        for match in sorted(self.root.glob(pat)):
            if not match.is_file():
                continue
            rel = self.relative(match)
            if _is_ignored(rel):
                continue
            if exclude and fnmatch.fnmatch(rel, exclude):
                continue
            out.append(rel)
            if max_results is not None and len(out) >= max_results:
                break
        return out

    def write(self, path: str, content: str) -> None:
        full = self.resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(content, encoding="utf-8")
        logger.debug("files.write path=%s chars=%s", path, len(content))

    def create_new(self, path: str, content: str) -> None:
        full = self.resolve(path)
        if full.exists():
            raise FileExistsError(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        # "x" mode keeps the existence check atomic.
        with full.open("x", encoding="utf-8") as fh:
            fh.write(content)
        logger.debug("files.create path=%s chars=%s", path, len(content))

    def delete(self, path: str) -> None:
        full = self.resolve(path)
        if full.is_file():
            full.unlink()
