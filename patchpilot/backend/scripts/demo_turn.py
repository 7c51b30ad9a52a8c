"""Demo: run one streamed turn against a workspace and print the events.

Run:
  PATCHPILOT_WORKSPACE_ROOT=/path/to/git/repo python patchpilot/backend/scripts/demo_turn.py "Explain main.py"

Note: This script is for local development/demo purposes. With LLM_MODE=stub
(the default) the turn never modifies files, but a new thread still forks a
`patchpilot-<id>` branch in the target repository; the script rejects the
thread at the end to clean it up.
"""

from __future__ import annotations

import sys

from patchpilot_api.logging_config import configure_logging
from patchpilot_api.services.agents.factory import build_engine
from patchpilot_api.services.settings.env import load_env
from patchpilot_contracts.events import ModelTokenEvent, TurnEndEvent


def main() -> None:
    load_env()
    configure_logging()

    prompt = " ".join(sys.argv[1:]) or "What does this project do?"
    engine = build_engine()

    thread_id = ""
    for event in engine.stream_turn(prompt):
        thread_id = thread_id or event.thread_id
        if isinstance(event, ModelTokenEvent):
            continue
        if isinstance(event, TurnEndEvent):
            print(f"[turn_end] mode={event.state.conversation_mode} messages={len(event.state.messages)}")
            print(event.state.messages[-1].content)
            continue
        print(event.model_dump_json(exclude={"thread_id"}))

    if thread_id:
        engine.reject(thread_id)


if __name__ == "__main__":
    main()
