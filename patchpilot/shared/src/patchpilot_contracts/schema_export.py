"""Schema export helpers.

This module is intentionally small and dependency-free beyond Pydantic.
It can be used by:
- backend: generate OpenAPI/JSON Schema artifacts
- frontend: consume JSON Schema for types (codegen), including the event union
- docs: publish contract schema snapshots
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, TypeAdapter

from .checkpoint import AcceptResponse, ListCheckpointsResponse, RejectResponse, RestoreRequest, RestoreResponse
from .events import WorkflowEvent
from .thread import Message, ThreadState
from .turn import ProcessTurnRequest, ProcessTurnResponse


def export_json_schema() -> dict[str, Any]:
    """Return a single bundled JSON schema for the public contract models."""

    # Prefer a stable, explicit set of models rather than introspecting modules.
    return {
        "title": "patchpilot-contracts",
        "models": {
            "ProcessTurnRequest": ProcessTurnRequest.model_json_schema(),
            "ProcessTurnResponse": ProcessTurnResponse.model_json_schema(),
            "ThreadState": ThreadState.model_json_schema(),
            "Message": Message.model_json_schema(),
            "WorkflowEvent": TypeAdapter(WorkflowEvent).json_schema(),
            "ListCheckpointsResponse": ListCheckpointsResponse.model_json_schema(),
            "RestoreRequest": RestoreRequest.model_json_schema(),
            "RestoreResponse": RestoreResponse.model_json_schema(),
            "AcceptResponse": AcceptResponse.model_json_schema(),
            "RejectResponse": RejectResponse.model_json_schema(),
        },
    }


def to_json(schema: dict[str, Any], *, indent: int = 2) -> str:
    """Serialize a schema dict to JSON."""

    return json.dumps(schema, indent=indent, sort_keys=True)


def model_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Convenience helper for exporting a single model's JSON schema."""

    return model.model_json_schema()
