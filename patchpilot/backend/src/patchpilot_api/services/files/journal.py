"""Per-turn write journal.

`JournaledFiles` wraps a `FileAccess` for the duration of one turn. The first
mutation of a path records its original content (or its absence); `rollback()`
puts every touched path back, `clear()` forgets the journal once the changes
are committed.
"""

from __future__ import annotations

import logging

from patchpilot_contracts.tools import DirectoryEntry

from .workspace import FileAccess

logger = logging.getLogger(__name__)


class JournaledFiles:
    def __init__(self, inner: FileAccess) -> None:
        self._inner = inner
        # path -> original content, None when the file did not exist.
        self._originals: dict[str, str | None] = {}

    @property
    def touched(self) -> list[str]:
        return list(self._originals)

    def _remember(self, path: str) -> None:
        if path not in self._originals:
            self._originals[path] = self._inner.read(path)

    def read(self, path: str) -> str | None:
        return self._inner.read(path)

    def exists(self, path: str) -> bool:
        return self._inner.exists(path)

    def list_dir(self, path: str) -> list[DirectoryEntry]:
        return self._inner.list_dir(path)

    def search(self, pattern: str, exclude: str | None = None, max_results: int | None = None) -> list[str]:
        return self._inner.search(pattern, exclude, max_results)

    def write(self, path: str, content: str) -> None:
        self._remember(path)
        self._inner.write(path, content)

    def create_new(self, path: str, content: str) -> None:
        self._remember(path)
        self._inner.create_new(path, content)

    def delete(self, path: str) -> None:
        self._remember(path)
        self._inner.delete(path)

    def rollback(self) -> list[str]:
        """Restore every touched path; returns the paths restored."""

        restored: list[str] = []
        for path, original in reversed(list(self._originals.items())):
            if original is None:
                self._inner.delete(path)
            else:
                self._inner.write(path, original)
            restored.append(path)
        if restored:
            logger.info("files.rollback paths=%s", restored)
        self._originals.clear()
        return restored

    def clear(self) -> None:
        self._originals.clear()
