"""Builds the workflow engine from settings (the only place collaborators are chosen)."""

from __future__ import annotations

import logging

from ..diagnostics.syntax import SyntaxDiagnostics
from ..files.workspace import LocalWorkspace
from ..llm.client import build_language_model
from ..persistence.file_store import FileCheckpointStore
from ..persistence.interface import CheckpointStore
from ..persistence.memory_store import InMemoryCheckpointStore
from ..settings.config import EngineSettings
from ..vcs.git import GitRepository
from .workflow import WorkflowEngine

logger = logging.getLogger(__name__)


def build_store(settings: EngineSettings) -> CheckpointStore:
    if settings.store_path is not None:
        return FileCheckpointStore(settings.store_path)
    return InMemoryCheckpointStore()


def build_engine(settings: EngineSettings | None = None) -> WorkflowEngine:
    settings = settings or EngineSettings.from_env()
    root = settings.workspace_root
    logger.info(
        "engine.build llm_mode=%s workspace=%s store=%s",
        settings.llm_mode,
        root,
        settings.store_path or "memory",
    )
    return WorkflowEngine(
        model=build_language_model(settings),
        files=LocalWorkspace(root),
        vcs=GitRepository(root),
        diagnostics=SyntaxDiagnostics(root),
        store=build_store(settings),
        settings=settings,
    )
