"""Result type for recoverable failures.

Operations whose failure is an expected outcome (a patch that does not apply,
an unknown checkpoint) return `Ok(value)` or `Failure(kind, detail)` instead of
raising or returning sentinel strings. Turn-aborting failures are exceptions
(see `errors.py`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Literal, TypeVar, Union

T = TypeVar("T")


class FailureKind(str, Enum):
    context_not_found = "context_not_found"
    no_hunk = "no_hunk"
    parse_error = "parse_error"
    apply_mismatch = "apply_mismatch"
    write_failed = "write_failed"
    precondition_failed = "precondition_failed"
    not_found = "not_found"
    checkpoint_not_found = "checkpoint_not_found"
    no_lineage = "no_lineage"
    no_commits = "no_commits"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    detail: str = ""
    ok: Literal[False] = False

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}".strip()


Result = Union[Ok[T], Failure]
