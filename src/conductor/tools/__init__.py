"""Tool contract, registry, and the built-in workspace tools."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from conductor.knowledge_plane.scanner import RepositoryScanner
from conductor.tools.builtin import (
    DEFAULT_TEST_COMMAND,
    ListFilesTool,
    ReadFileTool,
    RunCommandTool,
    RunTestsTool,
    SearchTextTool,
    WriteFileTool,
    parse_test_output,
)
from conductor.tools.generators import GenerateCodeTool, GenerateTestsTool, SimulatedTestRunTool
from conductor.tools.registry import Tool, ToolOutput, ToolRegistry

if TYPE_CHECKING:
    from conductor.observability.metrics import MetricsRegistry


def build_tool_registry(
    workspace: Path | str,
    *,
    test_command: str = DEFAULT_TEST_COMMAND,
    shell_allowlist: Sequence[str] = (),
    operation_timeout_seconds: float = 0.0,
    mock: bool = False,
    metrics: MetricsRegistry | None = None,
    logger: Any | None = None,
) -> ToolRegistry:
    """Registry with every built-in tool bound to ``workspace``.

    ``mock`` swaps the external test runner for the offline simulation.
    """

    root = Path(workspace).resolve()
    scanner = RepositoryScanner(root)
    shell = RunCommandTool(root, allowlist=shell_allowlist)
    test_runner: Tool = (
        SimulatedTestRunTool(root) if mock else RunTestsTool(root, command=test_command, runner=shell)
    )
    tools: list[Tool] = [
        ReadFileTool(root),
        WriteFileTool(root),
        ListFilesTool(root, scanner=scanner),
        SearchTextTool(root, scanner=scanner),
        shell,
        test_runner,
        GenerateCodeTool(),
        GenerateTestsTool(),
    ]
    return ToolRegistry(
        tools,
        operation_timeout_seconds=operation_timeout_seconds,
        metrics=metrics,
        logger=logger,
    )


__all__ = [
    "Tool",
    "ToolOutput",
    "ToolRegistry",
    "build_tool_registry",
    "parse_test_output",
]
