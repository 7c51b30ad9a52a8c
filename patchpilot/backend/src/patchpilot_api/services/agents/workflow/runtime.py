"""Per-turn runtime handed to every workflow node.

A `TurnContext` bundles the injected collaborators with the turn-scoped pieces:
the event sink, the typed `TurnLog`, and the cancellation token. Nothing here
is global; the engine builds a fresh context for each turn.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Sequence

from patchpilot_contracts.events import (
    LogEvent,
    LogLevel,
    ModelEndEvent,
    ModelStartEvent,
    ModelTokenEvent,
    WorkflowEvent,
)
from patchpilot_contracts.thread import Message, MessageRole, new_message_id

from ...diagnostics.syntax import DiagnosticsSource
from ...files.journal import JournaledFiles
from ...llm.client import ChatMessage, LanguageModel, LLMClientError
from ...settings.config import EngineSettings
from ...vcs.git import VersionControl
from .errors import TurnCancelled

logger = logging.getLogger(__name__)

EventSink = Callable[[WorkflowEvent], None]

_PY_LEVELS = {
    LogLevel.internal: logging.DEBUG,
    LogLevel.thinking: logging.INFO,
    LogLevel.public: logging.INFO,
    LogLevel.diff: logging.DEBUG,
    LogLevel.tool: logging.INFO,
    LogLevel.error: logging.ERROR,
}


def discard_events(event: WorkflowEvent) -> None:
    return None


class CancellationToken:
    def __init__(self, thread_id: str) -> None:
        self.thread_id = thread_id
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelled(self.thread_id)


class TurnLog:
    """Typed log sink for one turn.

    Every entry goes to the module logger; entries above `internal` are also
    forwarded to the event stream so a UI can show them.
    """

    def __init__(self, thread_id: str, emit: EventSink) -> None:
        self._thread_id = thread_id
        self._emit = emit

    def log(self, level: LogLevel, message: str) -> None:
        logger.log(_PY_LEVELS[level], "turn.log thread_id=%s level=%s %s", self._thread_id, level.value, message)
        if level is not LogLevel.internal:
            self._emit(LogEvent(thread_id=self._thread_id, level=level, message=message))

    def internal(self, message: str) -> None:
        self.log(LogLevel.internal, message)

    def thinking(self, message: str) -> None:
        self.log(LogLevel.thinking, message)

    def public(self, message: str) -> None:
        self.log(LogLevel.public, message)

    def diff(self, message: str) -> None:
        self.log(LogLevel.diff, message)

    def tool(self, message: str) -> None:
        self.log(LogLevel.tool, message)

    def error(self, message: str) -> None:
        self.log(LogLevel.error, message)


@dataclass
class TurnContext:
    thread_id: str
    model: LanguageModel
    files: JournaledFiles
    vcs: VersionControl
    diagnostics: DiagnosticsSource
    settings: EngineSettings
    emit: EventSink = discard_events
    cancel: CancellationToken = field(init=False)
    log: TurnLog = field(init=False)
    node: str = ""

    def __post_init__(self) -> None:
        self.cancel = CancellationToken(self.thread_id)
        self.log = TurnLog(self.thread_id, self.emit)

    def check_cancelled(self) -> None:
        self.cancel.raise_if_cancelled()

    def stream_text(self, messages: Sequence[ChatMessage], *, step: str, temperature: float = 0.0) -> Message:
        """Stream an assistant message, emitting model events tagged with its id.

        If the stream fails part-way, the call is repeated once without
        streaming and the full text is sent as a `reset` token so the caller
        can replace whatever it already rendered for this message id.
        """

        self.check_cancelled()
        message_id = new_message_id()
        self.emit(ModelStartEvent(thread_id=self.thread_id, node=self.node, step=step, message_id=message_id))

        parts: list[str] = []
        try:
            for chunk in self.model.stream(messages, step=step, temperature=temperature):
                self.check_cancelled()
                parts.append(chunk)
                self.emit(
                    ModelTokenEvent(thread_id=self.thread_id, node=self.node, message_id=message_id, content=chunk)
                )
            content = "".join(parts)
        except LLMClientError as e:
            self.log.internal(f"stream failed step={step} chunks={len(parts)} error={e}; retrying without streaming")
            self.check_cancelled()
            content = self.model.invoke(messages, step=step, temperature=temperature)
            self.emit(
                ModelTokenEvent(
                    thread_id=self.thread_id,
                    node=self.node,
                    message_id=message_id,
                    content=content,
                    reset=True,
                )
            )

        self.emit(ModelEndEvent(thread_id=self.thread_id, node=self.node, step=step, message_id=message_id))
        return Message(message_id=message_id, role=MessageRole.assistant, content=content.strip())
