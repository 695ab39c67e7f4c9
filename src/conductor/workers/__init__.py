"""Workers: the capability-typed units the orchestrator delegates to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from conductor.workers.base import (
    ROLE_CODE,
    ROLE_SEARCH,
    ROLE_TEST,
    BaseWorker,
    Worker,
    WorkerSettings,
)
from conductor.workers.code import CodeWorker
from conductor.workers.registry import WorkerRegistry
from conductor.workers.search import SearchWorker
from conductor.workers.testing import TestWorker

if TYPE_CHECKING:
    from conductor.knowledge_plane.context_store import ContextStore
    from conductor.tools.registry import ToolRegistry


def build_worker_registry(
    store: ContextStore,
    tools: ToolRegistry,
    *,
    settings: WorkerSettings | None = None,
    logger: Any | None = None,
) -> WorkerRegistry:
    """Registry holding the built-in search, code, and test workers."""

    return WorkerRegistry(
        worker_type(store=store, tools=tools, settings=settings, logger=logger)
        for worker_type in (SearchWorker, CodeWorker, TestWorker)
    )


__all__ = [
    "ROLE_CODE",
    "ROLE_SEARCH",
    "ROLE_TEST",
    "BaseWorker",
    "CodeWorker",
    "SearchWorker",
    "TestWorker",
    "Worker",
    "WorkerRegistry",
    "WorkerSettings",
    "build_worker_registry",
]
