"""Code worker: bounded generate-then-verify loop over the code generator tool."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar, Final

from conductor.domain.errors import ContextCapacityError
from conductor.workers.base import ROLE_CODE, BaseWorker, gathered_context

if TYPE_CHECKING:
    from conductor.domain.models import Task, WorkerResult
    from conductor.utils.concurrency import CancellationToken

_MAX_CONTEXT_FILES: Final[int] = 10
_WRITTEN_RELEVANCE: Final[float] = 5.0


def marker_pattern(markers: Sequence[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(marker) for marker in markers)
    return re.compile(rf"\b(?:{alternatives})\b")


def _generated_files(data: Mapping[str, Any]) -> list[tuple[str, str]]:
    files: list[tuple[str, str]] = []
    for entry in data.get("files", ()):
        if not isinstance(entry, Mapping):
            continue
        path = entry.get("path")
        content = entry.get("content")
        if isinstance(path, str) and path and isinstance(content, str):
            files.append((path, content))
    return files


class CodeWorker(BaseWorker):
    """Gathers related files, generates code, and rejects unresolved placeholders."""

    role: ClassVar[str] = ROLE_CODE
    capability_tags: ClassVar[tuple[str, ...]] = ("code", "generate", "write_files")

    async def _run(
        self,
        task: Task,
        *,
        started: float,
        cancel_token: CancellationToken | None,
    ) -> WorkerResult:
        markers = marker_pattern(self._settings.unresolved_markers)
        feedback = task.feedback
        previous_attempt: list[dict[str, str]] | None = None
        errors: list[str] = []

        for attempt in range(1, self._settings.code_max_attempts + 1):
            related = list(dict.fromkeys([*gathered_context(task), *self._store.search(task.description)]))
            generated = await self._tool(
                "generate_code",
                {
                    "description": task.description,
                    "task_type": task.type,
                    "context": related[:_MAX_CONTEXT_FILES],
                    "feedback": feedback,
                    "previous_attempt": previous_attempt,
                },
                cancel_token,
            )
            files = _generated_files(generated.data)

            if not files:
                problem = f"attempt {attempt}: generator produced no files"
            else:
                rejected = [path for path, content in files if markers.search(content)]
                problem = (
                    f"attempt {attempt}: unresolved markers in {', '.join(rejected)}" if rejected else ""
                )

            if problem:
                errors.append(problem)
                feedback = problem
                previous_attempt = [{"path": path, "content": content} for path, content in files]
                self._logger.info("code_worker_attempt_rejected", task_id=task.id, attempt=attempt, reason=problem)
                continue

            written = await self._write(files, cancel_token=cancel_token)
            return self._result(
                task,
                started=started,
                success=True,
                artifacts=written,
                output={"files": written, "context": related[:_MAX_CONTEXT_FILES]},
                errors=errors,
                attempts=attempt,
            )

        return self._result(
            task,
            started=started,
            success=False,
            output={"files": []},
            errors=errors,
            attempts=self._settings.code_max_attempts,
        )

    async def _write(
        self,
        files: list[tuple[str, str]],
        *,
        cancel_token: CancellationToken | None,
    ) -> list[str]:
        written: list[str] = []
        for path, content in files:
            output = await self._tool("write_file", {"path": path, "content": content}, cancel_token)
            written.extend(output.artifacts)
            try:
                self._store.insert(path, content, relevance=_WRITTEN_RELEVANCE)
            except ContextCapacityError as exc:
                self._logger.warning("code_worker_cache_skipped", path=path, error=str(exc))
        return written


__all__ = ["CodeWorker", "marker_pattern"]
