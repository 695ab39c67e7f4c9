"""Exception taxonomy shared across planes.

Validation failures and iteration exhaustion are normal outcomes carried by
``TaskResult`` and never raised.
"""

from __future__ import annotations


class ConductorError(Exception):
    """Base class for orchestration-core errors."""


class ToolNotFoundError(ConductorError, LookupError):
    """Raised when a tool name is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"tool not found: {tool_name!r}")
        self.tool_name = tool_name


class ToolExecutionError(ConductorError):
    """A registered tool failed; the original error is chained as ``__cause__``."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"tool {tool_name!r} failed: {message}")
        self.tool_name = tool_name


class WorkerNotFoundError(ConductorError, LookupError):
    """Raised when a required worker role is not registered."""

    def __init__(self, worker_name: str) -> None:
        super().__init__(f"worker not found: {worker_name!r}")
        self.worker_name = worker_name


class ContextCapacityError(ConductorError):
    """Insert would exceed the context store capacity even after compaction."""

    def __init__(self, resource_id: str, *, requested_bytes: int, available_bytes: int) -> None:
        super().__init__(
            f"cannot cache {resource_id!r}: {requested_bytes} bytes requested, "
            f"{available_bytes} bytes available"
        )
        self.resource_id = resource_id
        self.requested_bytes = requested_bytes
        self.available_bytes = available_bytes


class PhaseError(ConductorError):
    """A gather/act/verify phase raised; the iteration is abandoned."""

    def __init__(self, phase: str, iteration: int, message: str) -> None:
        super().__init__(f"{phase} phase failed in iteration {iteration}: {message}")
        self.phase = phase
        self.iteration = iteration


__all__ = [
    "ConductorError",
    "ContextCapacityError",
    "PhaseError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "WorkerNotFoundError",
]
