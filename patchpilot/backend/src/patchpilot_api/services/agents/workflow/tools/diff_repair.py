"""Relocate model-written unified diffs against the real file.

Models get hunk line numbers wrong far more often than hunk content. `repair`
keeps each hunk body untouched and rebuilds its header from where the hunk's
leading lines actually occur in the original file:

1. Split the patch into file headers and hunks (a hunk starts at `@@`).
2. Anchor each hunk on its first two old-side lines (context or removed),
   compared after trimming whitespace.
3. Keep the position the header claims when the anchor matches there;
   otherwise take the first match at or after the end of the previous hunk.
4. Count old-side lines (context, removed, blank) and new-side lines
   (context, added, blank) from the body.
5. Emit `@@ -start,old +start',new @@`, where the new-side start carries the
   running line delta of earlier hunks, under file headers naming the
   caller's path. A header whose numbers are already right is kept as
   written, so `@@ -2 +2 @@` stays short.

Every hunk is repaired independently. A hunk whose anchor cannot be found
fails the whole repair with `FailureKind.context_not_found`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from ..results import Failure, FailureKind, Ok, Result

logger = logging.getLogger(__name__)

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$")

_ANCHOR_LINES = 2


@dataclass(frozen=True)
class _RawHunk:
    header: str
    body: tuple[str, ...]

    @property
    def claimed_old_start(self) -> int | None:
        m = HUNK_HEADER.match(self.header)
        return int(m.group(1)) if m else None

    @property
    def numbers(self) -> tuple[int, int, int, int] | None:
        """Header numbers as written; an omitted count means 1."""

        m = HUNK_HEADER.match(self.header)
        if not m:
            return None
        return int(m.group(1)), int(m.group(2) or 1), int(m.group(3)), int(m.group(4) or 1)

    @property
    def section(self) -> str:
        m = HUNK_HEADER.match(self.header)
        return m.group(5) if m else ""


def _is_file_header(lines: Sequence[str], i: int) -> bool:
    return lines[i].startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ ")


def split_hunks(patch: str) -> tuple[list[str], list[_RawHunk]]:
    """Split patch text into its leading header lines and raw hunks."""

    lines = patch.replace("\r\n", "\n").strip("\n").split("\n")
    headers: list[str] = []
    hunks: list[_RawHunk] = []
    i = 0
    while i < len(lines) and not lines[i].startswith("@@"):
        headers.append(lines[i])
        i += 1

    while i < len(lines):
        header = lines[i]
        i += 1
        body: list[str] = []
        while i < len(lines) and not lines[i].startswith("@@"):
            if lines[i].startswith("diff --git ") or _is_file_header(lines, i):
                break
            body.append(lines[i])
            i += 1
        hunks.append(_RawHunk(header=header, body=tuple(body)))
        # skip stray headers between hunks; this patch targets a single file
        while i < len(lines) and not lines[i].startswith("@@"):
            i += 1
    return headers, hunks


def old_side(body: Sequence[str]) -> list[str]:
    return [ln[1:] for ln in body if ln == "" or ln[0] in " -"]


def new_side(body: Sequence[str]) -> list[str]:
    return [ln[1:] for ln in body if ln == "" or ln[0] in " +"]


def _matches_at(original: Sequence[str], anchor: Sequence[str], index: int) -> bool:
    if index < 0 or index + len(anchor) > len(original):
        return False
    return all(original[index + j].strip() == anchor[j].strip() for j in range(len(anchor)))


def _find_anchor(original: Sequence[str], anchor: Sequence[str], *, start: int, claimed: int | None) -> int:
    if claimed is not None and claimed >= start and _matches_at(original, anchor, claimed):
        return claimed
    for i in range(start, len(original) - len(anchor) + 1):
        if _matches_at(original, anchor, i):
            return i
    return -1


def _preview(lines: Sequence[str]) -> str:
    return " / ".join(repr(ln.strip()) for ln in lines)


def repair(original_lines: Sequence[str], patch: str, file_path: str) -> Result[str]:
    """Rewrite every hunk header of `patch` to match `original_lines`.

    `original_lines` is the file content split on newlines (no terminators).
    Returns the corrected patch, newline-terminated, or a typed failure.
    """

    _, hunks = split_hunks(patch or "")
    if not hunks:
        return Failure(FailureKind.no_hunk, f"No hunk header (@@) found in patch for {file_path}")

    out = [f"--- a/{file_path}", f"+++ b/{file_path}"]
    search_from = 0
    delta = 0
    for n, hunk in enumerate(hunks, start=1):
        before = old_side(hunk.body)
        after = new_side(hunk.body)
        claimed = hunk.claimed_old_start

        if before:
            anchor = before[:_ANCHOR_LINES]
            found = _find_anchor(
                original_lines,
                anchor,
                start=search_from,
                claimed=claimed - 1 if claimed is not None else None,
            )
            if found == -1:
                logger.info("diff.repair context_not_found path=%s hunk=%s", file_path, n)
                return Failure(
                    FailureKind.context_not_found,
                    f"Hunk {n}: context {_preview(anchor)} not found in {file_path}",
                )
            old_start = found + 1
            search_from = found + len(before)
        else:
            # Pure insertion: -L,0 means "after line L". Trust the claim, clamped.
            found = min(max(claimed or 0, search_from), len(original_lines))
            old_start = found
            search_from = found

        if after:
            new_start = (found if before else old_start) + 1 + delta
        else:
            new_start = found + delta
        delta += len(after) - len(before)

        if hunk.numbers == (old_start, len(before), new_start, len(after)):
            out.append(hunk.header)
        else:
            out.append(f"@@ -{old_start},{len(before)} +{new_start},{len(after)} @@{hunk.section}")
        out.extend(hunk.body)

    return Ok("\n".join(out) + "\n")
