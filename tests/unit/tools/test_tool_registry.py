"""
conductor - tool registry unit tests

File: tests/unit/tools/test_registry.py

Purpose
- Lookup, error wrapping, timeout and cancellation behavior of ``ToolRegistry``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from conductor.domain.errors import ToolExecutionError, ToolNotFoundError
from conductor.observability.metrics import MetricsRegistry
from conductor.tools.registry import Tool, ToolOutput, ToolRegistry
from conductor.utils.concurrency import CancellationToken


class _EchoTool:
    name = "echo"
    description = "Echo the payload back."

    async def execute(self, payload: Mapping[str, Any], *, cancel_token: Any = None) -> ToolOutput:
        return ToolOutput(data=dict(payload), artifacts=("echo.txt",))


class _BrokenTool:
    name = "broken"
    description = "Always raises."

    async def execute(self, payload: Mapping[str, Any], *, cancel_token: Any = None) -> ToolOutput:
        raise OSError("disk on fire")


class _SlowTool:
    name = "slow"
    description = "Sleeps for a while."

    async def execute(self, payload: Mapping[str, Any], *, cancel_token: Any = None) -> ToolOutput:
        await asyncio.sleep(5)
        return ToolOutput()


def test_tools_satisfy_protocol_and_are_listed() -> None:
    registry = ToolRegistry([_EchoTool(), _BrokenTool()])

    assert isinstance(_EchoTool(), Tool)
    assert registry.names() == ["broken", "echo"]
    assert "echo" in registry
    assert len(registry) == 2
    assert registry.describe()["echo"] == "Echo the payload back."


def test_duplicate_names_and_negative_timeout_are_rejected() -> None:
    with pytest.raises(ValueError, match="duplicate tool name"):
        ToolRegistry([_EchoTool(), _EchoTool()])
    with pytest.raises(ValueError):
        ToolRegistry([], operation_timeout_seconds=-1)


async def test_execute_dispatches_and_records_duration() -> None:
    metrics = MetricsRegistry()
    registry = ToolRegistry([_EchoTool()], metrics=metrics)

    output = await registry.execute("echo", {"value": 1})

    assert output.get("value") == 1
    assert output.get("missing", "default") == "default"
    assert output.artifacts == ("echo.txt",)
    distribution = metrics.get_distribution("tool_duration_seconds", labels={"tool": "echo"})
    assert distribution is not None


async def test_unknown_tool_raises_not_found() -> None:
    registry = ToolRegistry([_EchoTool()])

    with pytest.raises(ToolNotFoundError) as excinfo:
        await registry.execute("nope")

    assert excinfo.value.tool_name == "nope"


async def test_tool_failure_is_wrapped_with_cause() -> None:
    metrics = MetricsRegistry()
    registry = ToolRegistry([_BrokenTool()], metrics=metrics)

    with pytest.raises(ToolExecutionError) as excinfo:
        await registry.execute("broken", {})

    assert excinfo.value.tool_name == "broken"
    assert "disk on fire" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, OSError)
    assert metrics.get_counter("tool_failures_total", labels={"tool": "broken"}) == 1


async def test_operation_timeout_becomes_tool_error() -> None:
    registry = ToolRegistry([_SlowTool()], operation_timeout_seconds=0.05)

    with pytest.raises(ToolExecutionError, match="timed out"):
        await registry.execute("slow")


async def test_cancellation_propagates_unwrapped() -> None:
    registry = ToolRegistry([_SlowTool()])
    token = CancellationToken()

    call = asyncio.create_task(registry.execute("slow", cancel_token=token))
    await asyncio.sleep(0.01)
    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        await call
