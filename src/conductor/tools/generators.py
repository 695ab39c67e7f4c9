"""Deterministic offline generators used for mock runs and tests.

They stand in for model-backed generators: output is a pure function of the
payload, so the same task always produces the same files.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Mapping, Sequence
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Final

from conductor.knowledge_plane.search_index import query_tokens
from conductor.tools.builtin import WorkspaceTool
from conductor.tools.registry import ToolOutput

if TYPE_CHECKING:
    from conductor.utils.concurrency import CancellationToken

_GENERATED_PACKAGE: Final[str] = "generated"
_MAX_SLUG_TOKENS: Final[int] = 4
_TEST_FUNCTION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*(?:async\s+)?def\s+test_\w+", re.MULTILINE)


def slugify(text: str, *, fallback: str = "task") -> str:
    tokens = query_tokens(text)[:_MAX_SLUG_TOKENS]
    slug = "_".join(tokens)
    if not slug or not slug[0].isalpha():
        slug = f"{fallback}_{slug}" if slug else fallback
    return slug


def public_functions(source: str) -> list[str]:
    """Top-level public function names of a Python source, in definition order."""

    try:
        tree = ast.parse(source)
    except SyntaxError:
        return []
    return [
        node.name
        for node in tree.body
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and not node.name.startswith("_")
    ]


class GenerateCodeTool:
    """Emits one small Python module derived from the task description."""

    name = "generate_code"
    description = "Deterministically generate a Python module for a task description."

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        description = payload.get("description")
        if not isinstance(description, str) or not description.strip():
            raise ValueError("payload field 'description' must be a non-empty string")
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        slug = slugify(description)
        summary = description.strip().replace('"', "'")
        context_paths = [path for path in payload.get("context", ()) if isinstance(path, str)]
        feedback = payload.get("feedback")
        lines = [
            f'"""Generated for: {summary}"""',
            "",
            "",
            f"def {slug}(value: str) -> str:",
            f'    return f"{slug}:{{value}}"',
            "",
            "",
            "def describe() -> dict[str, object]:",
            "    return {",
            f"        \"task\": {description.strip()!r},",
            f"        \"context\": {context_paths[:5]!r},",
            f"        \"revision\": {1 if not feedback else 2},",
            "    }",
            "",
        ]
        path = PurePosixPath(_GENERATED_PACKAGE, f"{slug}.py").as_posix()
        return ToolOutput(data={"files": [{"path": path, "content": "\n".join(lines)}]})


class GenerateTestsTool:
    """Emits one pytest module per Python source file, one test per public function."""

    name = "generate_tests"
    description = "Deterministically generate pytest tests for a Python source file."

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        source_path = payload.get("source_path")
        content = payload.get("content")
        if not isinstance(source_path, str) or not source_path.strip():
            raise ValueError("payload field 'source_path' must be a non-empty string")
        if not isinstance(content, str):
            raise ValueError("payload field 'content' must be a string")

        source = PurePosixPath(source_path)
        if source.suffix != ".py":
            return ToolOutput(data={"path": None, "content": "", "test_count": 0})

        module = ".".join(source.with_suffix("").parts)
        functions = public_functions(content)
        lines = [f'"""Generated tests for {source.as_posix()}."""', "", f"import {module}", "", ""]
        lines += ["def test_module_imports() -> None:", f"    assert {module} is not None", ""]
        for function in functions:
            lines += ["", f"def test_{function}_is_callable() -> None:", f"    assert callable({module}.{function})", ""]

        # Whole relative path, so same-stem sources never share a test file.
        test_path = PurePosixPath("tests", f"test_{module.replace('.', '_')}.py").as_posix()
        return ToolOutput(
            data={"path": test_path, "content": "\n".join(lines), "test_count": 1 + len(functions)},
        )


class SimulatedTestRunTool(WorkspaceTool):
    """Offline stand-in for the external test runner.

    Counts test functions in the given files and reports a fixed coverage.
    """

    name = "run_tests"
    description = "Count generated tests without executing them and report a fixed coverage."

    def __init__(self, root: Path | str, *, coverage: float = 100.0) -> None:
        super().__init__(root)
        self._coverage = coverage

    async def execute(
        self, payload: Mapping[str, Any], *, cancel_token: CancellationToken | None = None
    ) -> ToolOutput:
        paths = payload.get("paths", ())
        if isinstance(paths, str) or not isinstance(paths, Sequence):
            raise ValueError("payload field 'paths' must be a list of strings")
        total = 0
        for relative in paths:
            path = self._resolve(relative)
            if path.is_file():
                total += len(_TEST_FUNCTION_PATTERN.findall(path.read_text(encoding="utf-8")))
        return ToolOutput(
            data={
                "exit_code": 0,
                "tests_run": total,
                "passed": total,
                "failed": 0,
                "errors": 0,
                "coverage": self._coverage if total else 0.0,
                "output": f"{total} passed",
            }
        )


__all__ = [
    "GenerateCodeTool",
    "GenerateTestsTool",
    "SimulatedTestRunTool",
    "public_functions",
    "slugify",
]
