"""Test worker: generate tests for source files, run them, and check coverage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from conductor.domain.errors import ToolExecutionError
from conductor.knowledge_plane.structural import is_test_path
from conductor.workers.base import ROLE_TEST, BaseWorker, gathered_context

if TYPE_CHECKING:
    from conductor.domain.models import Task, WorkerResult
    from conductor.utils.concurrency import CancellationToken


class TestWorker(BaseWorker):
    """Verification fails on any failed generation, zero tests, or low coverage."""

    __test__ = False

    role: ClassVar[str] = ROLE_TEST
    capability_tags: ClassVar[tuple[str, ...]] = ("test", "generate_tests", "run_tests", "coverage")

    async def _run(
        self,
        task: Task,
        *,
        started: float,
        cancel_token: CancellationToken | None,
    ) -> WorkerResult:
        candidates = self._candidates(task)
        if not candidates:
            return self._result(
                task,
                started=started,
                success=False,
                errors=["no source files to test"],
            )

        generation_errors: list[str] = []
        written: list[str] = []
        generated_count = 0
        for path in candidates:
            content = await self._content(path, cancel_token)
            try:
                generated = await self._tool(
                    "generate_tests", {"source_path": path, "content": content}, cancel_token
                )
            except ToolExecutionError as exc:
                generation_errors.append(f"{path}: {exc}")
                continue
            test_path = generated.get("path")
            test_count = int(generated.get("test_count", 0) or 0)
            if not isinstance(test_path, str) or test_count <= 0:
                continue
            output = await self._tool(
                "write_file", {"path": test_path, "content": generated.get("content", "")}, cancel_token
            )
            written.extend(output.artifacts)
            generated_count += test_count

        run: dict[str, Any] = {}
        if written:
            run = dict((await self._tool("run_tests", {"paths": written}, cancel_token)).data)

        tests_run = int(run.get("tests_run", 0) or 0)
        coverage = run.get("coverage")
        coverage_value = float(coverage) if isinstance(coverage, (int, float)) else 0.0
        threshold = self._settings.test_coverage_threshold

        errors = list(generation_errors)
        if generation_errors:
            errors.append(f"test generation failed for {len(generation_errors)} file(s)")
        if generated_count == 0 or tests_run == 0:
            errors.append("no tests were produced")
        if coverage_value < threshold:
            errors.append(f"coverage {coverage_value:.1f}% is below the {threshold:.1f}% threshold")
        failed = int(run.get("failed", 0) or 0) + int(run.get("errors", 0) or 0)
        if failed:
            errors.append(f"{failed} test(s) failed")

        return self._result(
            task,
            started=started,
            success=not errors,
            artifacts=written,
            output={
                "sources": candidates,
                "test_files": written,
                "generated_tests": generated_count,
                "tests_run": tests_run,
                "coverage": coverage_value,
            },
            errors=errors,
        )

    def _candidates(self, task: Task) -> list[str]:
        ordered = dict.fromkeys([*gathered_context(task), *self._store.search(task.description)])
        sources = [path for path in ordered if not is_test_path(path)]
        return sources[: self._settings.search_max_cached_files]

    async def _content(self, path: str, cancel_token: CancellationToken | None) -> str:
        cached = self._store.get(path)
        if cached is not None:
            return cached.content
        output = await self._tool("read_file", {"path": path}, cancel_token)
        return str(output.get("content", ""))


__all__ = ["TestWorker"]
