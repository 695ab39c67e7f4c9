"""Search worker: locate the files a task concerns and warm the context store."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from conductor.domain.errors import ContextCapacityError, ToolExecutionError
from conductor.knowledge_plane.search_index import query_tokens
from conductor.knowledge_plane.structural import subsystem_scope
from conductor.workers.base import ROLE_SEARCH, BaseWorker

if TYPE_CHECKING:
    from conductor.domain.models import Task, WorkerResult
    from conductor.utils.concurrency import CancellationToken

STRATEGY_STRUCTURAL = "structural"
STRATEGY_FULL_TEXT = "full_text"

# Relevance assigned to files found by each strategy when cached.
_STRATEGY_RELEVANCE: dict[str, float] = {STRATEGY_STRUCTURAL: 2.0, STRATEGY_FULL_TEXT: 1.0}


class SearchWorker(BaseWorker):
    """Structural directory scan first; full-text scan only when that finds nothing."""

    role: ClassVar[str] = ROLE_SEARCH
    capability_tags: ClassVar[tuple[str, ...]] = ("search", "structural_scan", "full_text_scan")

    async def _run(
        self,
        task: Task,
        *,
        started: float,
        cancel_token: CancellationToken | None,
    ) -> WorkerResult:
        tokens = query_tokens(task.description, min_length=self._store.policy.min_query_token_length)
        if not tokens:
            return self._result(
                task,
                started=started,
                success=False,
                errors=[f"query {task.description!r} has no searchable terms"],
            )

        scope = subsystem_scope(tokens)
        listing = await self._tool("list_files", {"scope": scope, "match": tokens}, cancel_token)
        files = list(listing.get("files", []))
        strategy = STRATEGY_STRUCTURAL

        if not files:
            # Full-text fallback covers the whole tree.
            matches = await self._tool("search_text", {"terms": tokens, "scope": "."}, cancel_token)
            files = list(matches.get("files", []))
            strategy = STRATEGY_FULL_TEXT

        self._logger.info(
            "search_worker_scanned",
            task_id=task.id,
            scope=scope,
            strategy=strategy,
            matches=len(files),
        )
        if not files:
            return self._result(
                task,
                started=started,
                success=False,
                output={"scope": scope, "strategy": strategy, "files": []},
                errors=[f"no files matched {' '.join(tokens)!r} under {scope!r}"],
            )

        cached = await self._cache_files(files, strategy=strategy, cancel_token=cancel_token)
        return self._result(
            task,
            started=started,
            success=True,
            artifacts=files,
            output={"scope": scope, "strategy": strategy, "files": files, "cached": cached},
        )

    async def _cache_files(
        self,
        files: list[str],
        *,
        strategy: str,
        cancel_token: CancellationToken | None,
    ) -> list[str]:
        cached: list[str] = []
        for path in files[: self._settings.search_max_cached_files]:
            if self._store.contains(path):
                cached.append(path)
                continue
            try:
                output = await self._tool("read_file", {"path": path}, cancel_token)
                self._store.insert(path, output.get("content", ""), relevance=_STRATEGY_RELEVANCE[strategy])
            except (ToolExecutionError, ContextCapacityError) as exc:
                self._logger.warning("search_worker_cache_skipped", path=path, error=str(exc))
                continue
            cached.append(path)
        return cached


__all__ = ["STRATEGY_FULL_TEXT", "STRATEGY_STRUCTURAL", "SearchWorker"]
