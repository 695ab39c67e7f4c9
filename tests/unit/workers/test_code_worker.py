from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from conductor.domain.models import FEEDBACK_CONTEXT_KEY, GATHERED_CONTEXT_KEY, Task
from conductor.knowledge_plane.context_store import ContextStore
from conductor.tools.builtin import WriteFileTool
from conductor.tools.registry import ToolOutput, ToolRegistry
from conductor.workers.base import WorkerSettings
from conductor.workers.code import CodeWorker, marker_pattern

if TYPE_CHECKING:
    from pathlib import Path


class _ScriptedGenerator:
    name = "generate_code"
    description = "Replays canned generator outputs."

    def __init__(self, *contents: str) -> None:
        self._contents = list(contents)
        self.payloads: list[dict[str, Any]] = []

    async def execute(self, payload: Mapping[str, Any], *, cancel_token: Any = None) -> ToolOutput:
        self.payloads.append(dict(payload))
        content = self._contents.pop(0) if len(self._contents) > 1 else self._contents[0]
        if not content:
            return ToolOutput(data={"files": []})
        return ToolOutput(data={"files": [{"path": "pkg/refund.py", "content": content}]})


def _worker(tmp_path: Path, generator: _ScriptedGenerator, **settings: Any) -> tuple[CodeWorker, ContextStore]:
    store = ContextStore(100_000)
    tools = ToolRegistry([generator, WriteFileTool(tmp_path)])
    return CodeWorker(store=store, tools=tools, settings=WorkerSettings(**settings)), store


def test_marker_pattern_matches_whole_words() -> None:
    pattern = marker_pattern(["TODO", "FIXME"])
    assert pattern.search("x = 1  # TODO: finish")
    assert not pattern.search("TODOS = []")


async def test_unresolved_markers_trigger_retry_with_feedback(tmp_path: Path) -> None:
    generator = _ScriptedGenerator("def refund():\n    pass  # TODO\n", "def refund():\n    return 0\n")
    worker, store = _worker(tmp_path, generator)
    task = Task.create("code", "add refund", context={GATHERED_CONTEXT_KEY: ["services/payment.py"]})

    result = await worker.execute(task)

    assert result.success
    assert result.attempts == 2
    assert result.artifacts == ("pkg/refund.py",)
    assert (tmp_path / "pkg" / "refund.py").read_text(encoding="utf-8") == "def refund():\n    return 0\n"
    assert generator.payloads[0]["context"][0] == "services/payment.py"
    assert "unresolved markers" in generator.payloads[1]["feedback"]
    assert generator.payloads[1]["previous_attempt"][0]["path"] == "pkg/refund.py"
    assert "pkg/refund.py" in store


async def test_gives_up_after_max_attempts(tmp_path: Path) -> None:
    generator = _ScriptedGenerator("# FIXME later\n")
    worker, _ = _worker(tmp_path, generator, code_max_attempts=2)

    result = await worker.execute(Task.create("code", "add refund"))

    assert not result.success
    assert result.attempts == 2
    assert len(result.errors) == 2
    assert not (tmp_path / "pkg").exists()


async def test_empty_generation_is_rejected(tmp_path: Path) -> None:
    generator = _ScriptedGenerator("")
    worker, _ = _worker(tmp_path, generator, code_max_attempts=1)

    result = await worker.execute(Task.create("code", "add refund"))

    assert not result.success
    assert "produced no files" in result.errors[0]


async def test_task_feedback_is_forwarded_and_task_not_mutated(tmp_path: Path) -> None:
    generator = _ScriptedGenerator("VALUE = 1\n")
    worker, _ = _worker(tmp_path, generator)
    task = Task.create("code", "add refund", context={FEEDBACK_CONTEXT_KEY: "coverage too low"})
    before = dict(task.context)

    await worker.execute(task)

    assert generator.payloads[0]["feedback"] == "coverage too low"
    assert task.context == before
