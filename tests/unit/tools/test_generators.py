from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conductor.tools.generators import (
    GenerateCodeTool,
    GenerateTestsTool,
    SimulatedTestRunTool,
    public_functions,
    slugify,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_slugify_uses_query_tokens() -> None:
    assert slugify("Add a refund endpoint for wallets") == "refund_endpoint_wallets"
    assert slugify("123 go") == "task_123"
    assert slugify("the and") == "task"


def test_public_functions_skips_private_and_invalid_source() -> None:
    source = "def pay():\n    pass\n\nasync def fetch():\n    pass\n\ndef _hidden():\n    pass\n"
    assert public_functions(source) == ["pay", "fetch"]
    assert public_functions("def broken(:") == []


async def test_generate_code_is_deterministic() -> None:
    tool = GenerateCodeTool()
    payload = {"description": "Add refund endpoint", "context": ["services/payment.py"]}

    first = await tool.execute(payload)
    second = await tool.execute(payload)

    assert first.data == second.data
    (generated,) = first.get("files")
    assert generated["path"] == "generated/refund_endpoint.py"
    assert "def refund_endpoint(value: str) -> str:" in generated["content"]
    assert "TODO" not in generated["content"]
    compile(generated["content"], generated["path"], "exec")


async def test_generate_code_marks_feedback_revisions() -> None:
    output = await GenerateCodeTool().execute({"description": "refund", "feedback": "too slow"})
    assert '"revision": 2' in output.get("files")[0]["content"]

    with pytest.raises(ValueError):
        await GenerateCodeTool().execute({"description": " "})


async def test_generate_tests_emits_one_test_per_public_function() -> None:
    output = await GenerateTestsTool().execute(
        {"source_path": "generated/refund.py", "content": "def refund(v):\n    return v\n"}
    )

    assert output.get("path") == "tests/test_generated_refund.py"
    assert output.get("test_count") == 2
    assert "import generated.refund" in output.get("content")
    assert "def test_refund_is_callable() -> None:" in output.get("content")


async def test_generate_tests_names_files_after_the_full_source_path() -> None:
    tool = GenerateTestsTool()
    content = "def helper():\n    return 1\n"

    first = await tool.execute({"source_path": "billing/util.py", "content": content})
    second = await tool.execute({"source_path": "ledger/util.py", "content": content})
    top_level = await tool.execute({"source_path": "util.py", "content": content})

    assert first.get("path") == "tests/test_billing_util.py"
    assert second.get("path") == "tests/test_ledger_util.py"
    assert top_level.get("path") == "tests/test_util.py"


async def test_generate_tests_skips_non_python_sources() -> None:
    output = await GenerateTestsTool().execute({"source_path": "docs/readme.md", "content": "# hi"})
    assert output.get("path") is None
    assert output.get("test_count") == 0


async def test_simulated_run_counts_test_functions(tmp_path: Path) -> None:
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "test_a.py").write_text(
        "def test_one():\n    pass\n\nasync def test_two():\n    pass\n", encoding="utf-8"
    )
    tool = SimulatedTestRunTool(tmp_path, coverage=88.0)

    output = await tool.execute({"paths": ["tests/test_a.py", "tests/missing.py"]})
    empty = await tool.execute({"paths": []})

    assert output.get("tests_run") == 2
    assert output.get("coverage") == 88.0
    assert empty.get("coverage") == 0.0
    with pytest.raises(ValueError):
        await tool.execute({"paths": "tests"})
