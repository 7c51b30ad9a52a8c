"""Unified-diff parsing and application.

Application is forgiving about positions (a hunk is searched outward from
where its header says it starts) but strict about content: old-side lines
must match exactly, or after stripping trailing whitespace.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..results import Failure, FailureKind, Ok, Result
from .diff_repair import HUNK_HEADER, new_side, old_side


@dataclass(frozen=True)
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[str, ...]

    @property
    def before(self) -> list[str]:
        return old_side(self.lines)

    @property
    def after(self) -> list[str]:
        return new_side(self.lines)


@dataclass(frozen=True)
class FilePatch:
    old_path: str | None
    new_path: str | None
    hunks: tuple[Hunk, ...]


def _header_path(raw: str) -> str | None:
    path = raw[4:].split("\t", 1)[0].strip()
    if path == "/dev/null" or not path:
        return None
    if path.startswith(("a/", "b/")):
        path = path[2:]
    return path


def _is_body_line(line: str) -> bool:
    return line == "" or line[0] in " +-\\"


def parse_unified_diff(text: str) -> Result[list[FilePatch]]:
    lines = (text or "").replace("\r\n", "\n").strip("\n").split("\n")
    patches: list[FilePatch] = []
    old_path: str | None = None
    new_path: str | None = None
    hunks: list[Hunk] = []
    started = False

    def flush() -> None:
        if hunks:
            patches.append(FilePatch(old_path=old_path, new_path=new_path, hunks=tuple(hunks)))

    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            if started:
                flush()
            old_path, new_path = _header_path(line), _header_path(lines[i + 1])
            hunks = []
            started = True
            i += 2
            continue
        if line.startswith("@@"):
            m = HUNK_HEADER.match(line)
            if not m:
                return Failure(FailureKind.parse_error, f"Malformed hunk header: {line!r}")
            started = True
            body: list[str] = []
            i += 1
            while i < len(lines) and _is_body_line(lines[i]) and not lines[i].startswith("@@"):
                if lines[i].startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
                    break
                body.append(lines[i])
                i += 1
            hunks.append(
                Hunk(
                    old_start=int(m.group(1)),
                    old_count=int(m.group(2)) if m.group(2) is not None else 1,
                    new_start=int(m.group(3)),
                    new_count=int(m.group(4)) if m.group(4) is not None else 1,
                    lines=tuple(body),
                )
            )
            continue
        # diff --git / index / mode lines and prose between files
        i += 1

    flush()
    if not patches:
        return Failure(FailureKind.parse_error, "No hunks found in patch")
    return Ok(patches)


def _match(lines: Sequence[str], before: Sequence[str], at: int, *, loose: bool) -> bool:
    if at < 0 or at + len(before) > len(lines):
        return False
    if loose:
        return all(lines[at + j].rstrip() == before[j].rstrip() for j in range(len(before)))
    return all(lines[at + j] == before[j] for j in range(len(before)))


def _locate(lines: Sequence[str], before: Sequence[str], expected: int, lower: int) -> int | None:
    limit = len(lines) - len(before)
    for loose in (False, True):
        for d in range(0, len(lines) + abs(expected) + 2):
            for at in (expected - d, expected + d) if d else (expected,):
                if lower <= at <= limit and _match(lines, before, at, loose=loose):
                    return at
    return None


def apply_patch(content: str, patch: FilePatch) -> Result[str]:
    """Apply every hunk of `patch` to `content`.

    The trailing-newline state of `content` is preserved; new (empty) files
    end with a newline.
    """

    had_trailing_newline = content.endswith("\n") or content == ""
    lines = content.split("\n")
    if had_trailing_newline:
        lines = lines[:-1]

    offset = 0
    cursor = 0
    for n, hunk in enumerate(patch.hunks, start=1):
        before, after = hunk.before, hunk.after
        if before:
            expected = hunk.old_start - 1 + offset
            at = _locate(lines, before, expected, cursor)
            if at is None:
                return Failure(
                    FailureKind.apply_mismatch,
                    f"Hunk {n} (line {hunk.old_start}) does not match the file content",
                )
        else:
            at = min(max(hunk.old_start + offset, cursor), len(lines))
        lines[at : at + len(before)] = after
        offset += len(after) - len(before)
        cursor = at + len(after)

    text = "\n".join(lines)
    if had_trailing_newline and lines:
        text += "\n"
    return Ok(text)


def select_file_patch(patches: Sequence[FilePatch], file_path: str) -> Result[FilePatch]:
    """Pick the patch for `file_path` out of a parsed diff."""

    if len(patches) == 1:
        return Ok(patches[0])
    for p in patches:
        if file_path in (p.new_path, p.old_path):
            return Ok(p)
    return Failure(
        FailureKind.parse_error,
        f"Patch touches {len(patches)} files and none is {file_path}; send one edit per file",
    )
