from __future__ import annotations

import logging
from typing import Literal, Sequence

from pydantic import BaseModel, Field, ValidationError

from patchpilot_contracts.thread import ConversationMode, Message

from ...llm.client import LanguageModel, LLMClientError
from .errors import ClassificationFailure
from .utils import read_prompt, system, to_chat_messages

logger = logging.getLogger(__name__)


class ModeClassification(BaseModel):
    # validation_feedback is set by Validation only, never by the classifier.
    conversation_mode: Literal["general_chat", "codebase_chat", "change_request"]
    reasoning: str = Field(default="", description="One sentence explaining the choice.")


def classify(model: LanguageModel, history: Sequence[Message]) -> ConversationMode:
    """Classify the latest turn with one structured-output model call.

    Raises:
        ClassificationFailure: if the call fails or the output does not validate.
    """

    if not history:
        raise ClassificationFailure("Cannot classify an empty conversation")

    messages = [system(read_prompt("mode_detection.md")), *to_chat_messages(history)]
    try:
        result = model.invoke_structured(messages, ModeClassification, step="classify")
    except (LLMClientError, ValidationError) as e:
        logger.warning("workflow.classify failed error=%s", e)
        raise ClassificationFailure(f"Mode classification failed: {e}") from e

    mode = ConversationMode(result.conversation_mode)
    logger.info("workflow.classify mode=%s", mode.value)
    return mode
