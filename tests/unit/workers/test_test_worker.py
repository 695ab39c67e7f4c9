from __future__ import annotations

from typing import TYPE_CHECKING

from conductor.domain.models import GATHERED_CONTEXT_KEY, Task
from conductor.knowledge_plane.context_store import ContextStore
from conductor.tools.builtin import ReadFileTool, WriteFileTool
from conductor.tools.generators import GenerateTestsTool, SimulatedTestRunTool
from conductor.tools.registry import ToolRegistry
from conductor.workers.testing import TestWorker

if TYPE_CHECKING:
    from pathlib import Path

_SOURCE = "def refund(amount):\n    return -amount\n\n\ndef charge(amount):\n    return amount\n"


def _worker(tmp_path: Path, *, coverage: float = 100.0) -> tuple[TestWorker, ContextStore]:
    store = ContextStore(100_000)
    tools = ToolRegistry(
        [
            GenerateTestsTool(),
            WriteFileTool(tmp_path),
            ReadFileTool(tmp_path),
            SimulatedTestRunTool(tmp_path, coverage=coverage),
        ]
    )
    return TestWorker(store=store, tools=tools), store


async def test_generates_and_runs_tests_for_gathered_sources(tmp_path: Path) -> None:
    worker, store = _worker(tmp_path)
    store.insert("billing/refund.py", _SOURCE)
    task = Task.create("test", "cover billing", context={GATHERED_CONTEXT_KEY: ["billing/refund.py"]})

    result = await worker.execute(task)

    assert result.success, result.errors
    assert result.artifacts == ("tests/test_billing_refund.py",)
    assert result.output["generated_tests"] == 3
    assert result.output["tests_run"] == 3
    assert (tmp_path / "tests" / "test_billing_refund.py").is_file()


async def test_reads_uncached_sources_through_tools(tmp_path: Path) -> None:
    (tmp_path / "billing").mkdir()
    (tmp_path / "billing" / "ledger.py").write_text(_SOURCE, encoding="utf-8")
    worker, _ = _worker(tmp_path)
    task = Task.create("test", "cover ledger", context={GATHERED_CONTEXT_KEY: ["billing/ledger.py"]})

    result = await worker.execute(task)

    assert result.success
    assert result.artifacts == ("tests/test_billing_ledger.py",)


async def test_same_named_sources_get_separate_test_files(tmp_path: Path) -> None:
    worker, store = _worker(tmp_path)
    store.insert("billing/util.py", _SOURCE)
    store.insert("ledger/util.py", "def post(entry):\n    return entry\n")
    gathered = ["billing/util.py", "ledger/util.py"]
    task = Task.create("test", "cover util", context={GATHERED_CONTEXT_KEY: gathered})

    result = await worker.execute(task)

    assert result.success, result.errors
    assert result.artifacts == ("tests/test_billing_util.py", "tests/test_ledger_util.py")
    assert result.output["tests_run"] == 5
    assert "import billing.util" in (tmp_path / "tests" / "test_billing_util.py").read_text(encoding="utf-8")
    assert "import ledger.util" in (tmp_path / "tests" / "test_ledger_util.py").read_text(encoding="utf-8")


async def test_low_coverage_fails_verification(tmp_path: Path) -> None:
    worker, store = _worker(tmp_path, coverage=50.0)
    store.insert("billing/refund.py", _SOURCE)
    task = Task.create("test", "cover billing", context={GATHERED_CONTEXT_KEY: ["billing/refund.py"]})

    result = await worker.execute(task)

    assert not result.success
    assert "coverage 50.0% is below the 80.0% threshold" in result.errors


async def test_non_python_sources_produce_no_tests(tmp_path: Path) -> None:
    worker, store = _worker(tmp_path)
    store.insert("docs/guide.md", "# Guide\n")
    task = Task.create("test", "guide", context={GATHERED_CONTEXT_KEY: ["docs/guide.md"]})

    result = await worker.execute(task)

    assert not result.success
    assert "no tests were produced" in result.errors


async def test_nothing_to_test(tmp_path: Path) -> None:
    worker, _ = _worker(tmp_path)

    result = await worker.execute(Task.create("test", "cover billing"))

    assert not result.success
    assert result.errors == ("no source files to test",)
