"""
conductor - worker contract

File: src/conductor/workers/base.py

Purpose
- Uniform capability contract shared by the search, code, and test workers.
- Shared plumbing: tool/store access, timing, result construction, decision logs.

Functional requirements
- ``execute`` returns a WorkerResult; content failures are ``success=False`` results,
  while infrastructure failures (missing tool, tool crash) raise.
- Workers never mutate the task they receive.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Final, Protocol, runtime_checkable

import structlog

from conductor.constants import DEFAULT_UNRESOLVED_MARKERS
from conductor.domain.models import GATHERED_CONTEXT_KEY, WorkerResult

if TYPE_CHECKING:
    from conductor.domain.models import Task
    from conductor.knowledge_plane.context_store import ContextStore
    from conductor.tools.registry import ToolOutput, ToolRegistry
    from conductor.utils.concurrency import CancellationToken

ROLE_SEARCH: Final[str] = "search"
ROLE_CODE: Final[str] = "code"
ROLE_TEST: Final[str] = "test"


@dataclass(frozen=True, slots=True)
class WorkerSettings:
    """Tunables shared by the built-in workers."""

    code_max_attempts: int = 3
    test_coverage_threshold: float = 80.0
    unresolved_markers: tuple[str, ...] = DEFAULT_UNRESOLVED_MARKERS
    search_max_cached_files: int = 10

    def __post_init__(self) -> None:
        if isinstance(self.code_max_attempts, bool) or self.code_max_attempts <= 0:
            raise ValueError("WorkerSettings.code_max_attempts must be > 0")
        if not 0 <= self.test_coverage_threshold <= 100:
            raise ValueError("WorkerSettings.test_coverage_threshold must be within [0, 100]")
        if self.search_max_cached_files <= 0:
            raise ValueError("WorkerSettings.search_max_cached_files must be > 0")
        object.__setattr__(self, "unresolved_markers", tuple(self.unresolved_markers))


@runtime_checkable
class Worker(Protocol):
    """Capability contract: ``name``, ``capabilities()`` and ``execute(task)``."""

    @property
    def name(self) -> str: ...

    def capabilities(self) -> tuple[str, ...]: ...

    async def execute(
        self,
        task: Task,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> WorkerResult: ...


class BaseWorker:
    """Shared plumbing for workers backed by the context store and tool registry."""

    role: ClassVar[str] = ""
    capability_tags: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        *,
        store: ContextStore,
        tools: ToolRegistry,
        settings: WorkerSettings | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._tools = tools
        self._settings = settings if settings is not None else WorkerSettings()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def name(self) -> str:
        return self.role

    @property
    def settings(self) -> WorkerSettings:
        return self._settings

    def capabilities(self) -> tuple[str, ...]:
        return self.capability_tags

    async def execute(
        self,
        task: Task,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> WorkerResult:
        started = time.perf_counter()
        result = await self._run(task, started=started, cancel_token=cancel_token)
        self._logger.info(
            "worker_finished",
            worker=self.name,
            task_id=task.id,
            success=result.success,
            artifacts=len(result.artifacts),
            attempts=result.attempts,
        )
        return result

    async def _run(
        self,
        task: Task,
        *,
        started: float,
        cancel_token: CancellationToken | None,
    ) -> WorkerResult:
        raise NotImplementedError

    async def _tool(
        self,
        name: str,
        payload: Mapping[str, Any],
        cancel_token: CancellationToken | None,
    ) -> ToolOutput:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return await self._tools.execute(name, payload, cancel_token=cancel_token)

    def _result(
        self,
        task: Task,
        *,
        started: float,
        success: bool,
        artifacts: Sequence[str] = (),
        output: Mapping[str, Any] | None = None,
        errors: Sequence[str] = (),
        attempts: int = 1,
    ) -> WorkerResult:
        return WorkerResult(
            worker=self.name,
            task_id=task.id,
            success=success,
            artifacts=tuple(dict.fromkeys(artifacts)),
            output=dict(output or {}),
            errors=tuple(errors),
            attempts=attempts,
            duration_seconds=time.perf_counter() - started,
        )


def gathered_context(task: Task) -> list[str]:
    """Resource ids the orchestrator gathered for this task's iteration."""

    value = task.context.get(GATHERED_CONTEXT_KEY, ())
    if isinstance(value, str) or not isinstance(value, Sequence):
        return []
    return [item for item in value if isinstance(item, str)]


__all__ = [
    "DEFAULT_UNRESOLVED_MARKERS",
    "ROLE_CODE",
    "ROLE_SEARCH",
    "ROLE_TEST",
    "BaseWorker",
    "Worker",
    "WorkerSettings",
    "gathered_context",
]
