"""Turn-aborting errors.

These exceptions abort the current turn. The engine reverts uncommitted writes,
records one error message on the thread, and re-raises so API layers can map
`code` to an HTTP status.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class WorkflowError(RuntimeError):
    code: str
    message: str = ""

    def __post_init__(self) -> None:
        # Ensure the base RuntimeError args contains the message for standard error behavior.
        super().__init__(self.message)

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}".strip()


class ClassificationFailure(WorkflowError):
    """Mode classification call failed or returned something unparseable."""

    def __init__(self, message: str) -> None:
        super().__init__("classification_failure", message)


class TurnCancelled(WorkflowError):
    def __init__(self, thread_id: str) -> None:
        super().__init__("cancelled", f"Turn cancelled for thread {thread_id}")


class ThreadBusyError(WorkflowError):
    def __init__(self, thread_id: str) -> None:
        super().__init__("thread_busy", f"A turn is already running for thread {thread_id}")


class ThreadConcludedError(WorkflowError):
    def __init__(self, thread_id: str) -> None:
        super().__init__("thread_concluded", f"Thread {thread_id} was accepted or rejected")


class ThreadNotFoundError(WorkflowError):
    def __init__(self, thread_id: str) -> None:
        super().__init__("thread_not_found", f"Thread not found: {thread_id}")
