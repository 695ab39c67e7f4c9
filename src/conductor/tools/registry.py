"""
conductor - tool contract and registry

File: src/conductor/tools/registry.py

Purpose
- Uniform contract for effectful external operations (file I/O, shell, generators).
- Static name -> tool lookup with error wrapping and optional per-call timeout.

Functional requirements
- Unknown names raise ToolNotFoundError.
- Tool failures surface as ToolExecutionError carrying the tool name.
- Cancellation propagates unwrapped.

Non-functional requirements
- Registration happens once at construction; lookups are safe for concurrent use.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from conductor.domain.errors import ToolExecutionError, ToolNotFoundError
from conductor.utils.concurrency import run_cancellable, run_with_timeout

if TYPE_CHECKING:
    from conductor.observability.metrics import MetricsRegistry
    from conductor.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class ToolOutput:
    """Result of one tool call: structured data plus produced artifact ids."""

    data: Mapping[str, Any] = field(default_factory=dict)
    artifacts: tuple[str, ...] = ()

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@runtime_checkable
class Tool(Protocol):
    """Capability contract every registered tool implements."""

    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    async def execute(
        self,
        payload: Mapping[str, Any],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ToolOutput: ...


class ToolRegistry:
    """Static keyed lookup of tools."""

    def __init__(
        self,
        tools: Iterable[Tool] = (),
        *,
        operation_timeout_seconds: float = 0.0,
        metrics: MetricsRegistry | None = None,
        logger: Any | None = None,
    ) -> None:
        if operation_timeout_seconds < 0:
            raise ValueError("operation_timeout_seconds must be >= 0")
        registered: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in registered:
                raise ValueError(f"duplicate tool name: {tool.name!r}")
            registered[tool.name] = tool
        self._tools: Mapping[str, Tool] = MappingProxyType(registered)
        self._timeout = float(operation_timeout_seconds)
        self._metrics = metrics
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def operation_timeout_seconds(self) -> float:
        return self._timeout

    def names(self) -> list[str]:
        return sorted(self._tools)

    def describe(self) -> dict[str, str]:
        return {name: self._tools[name].description for name in sorted(self._tools)}

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    async def execute(
        self,
        name: str,
        payload: Mapping[str, Any] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ToolOutput:
        """Dispatch ``payload`` to the named tool."""

        tool = self.get(name)
        started = time.perf_counter()
        call = tool.execute(dict(payload or {}), cancel_token=cancel_token)
        try:
            if self._timeout > 0:
                output = await run_with_timeout(call, self._timeout, cancel_token)
            else:
                output = await run_cancellable(call, cancel_token)
        except asyncio.CancelledError:
            raise
        except ToolExecutionError:
            self._record_failure(name)
            raise
        except TimeoutError as exc:
            self._record_failure(name)
            self._logger.warning("tool_timed_out", tool=name, timeout_seconds=self._timeout)
            raise ToolExecutionError(name, f"timed out after {self._timeout:g}s") from exc
        except Exception as exc:
            self._record_failure(name)
            self._logger.warning("tool_failed", tool=name, error=str(exc))
            raise ToolExecutionError(name, str(exc) or type(exc).__name__) from exc

        if self._metrics is not None:
            self._metrics.observe(
                "tool_duration_seconds", time.perf_counter() - started, labels={"tool": name}
            )
        return output

    def _record_failure(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.inc("tool_failures_total", labels={"tool": name})


__all__ = ["Tool", "ToolOutput", "ToolRegistry"]
