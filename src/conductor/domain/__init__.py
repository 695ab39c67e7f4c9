"""
conductor - domain layer

File: src/conductor/domain/__init__.py

Purpose
- Domain types shared across planes: Task, WorkerResult, TaskResult, IterationRecord, IDs, errors.

Functional requirements
- Domain objects must be serializable to JSON-safe dictionaries.

Non-functional requirements
- Domain layer stays free of IO side effects and third-party dependencies.
"""

from conductor.domain.errors import (
    ConductorError,
    ContextCapacityError,
    PhaseError,
    ToolExecutionError,
    ToolNotFoundError,
    WorkerNotFoundError,
)
from conductor.domain.models import (
    FEEDBACK_CONTEXT_KEY,
    GATHERED_CONTEXT_KEY,
    ActionOutput,
    IterationPhase,
    IterationRecord,
    OrchestratorState,
    Task,
    TaskOutcome,
    TaskResult,
    WorkerResult,
    to_json_value,
)

__all__ = [
    "FEEDBACK_CONTEXT_KEY",
    "GATHERED_CONTEXT_KEY",
    "ActionOutput",
    "ConductorError",
    "ContextCapacityError",
    "IterationPhase",
    "IterationRecord",
    "OrchestratorState",
    "PhaseError",
    "Task",
    "TaskOutcome",
    "TaskResult",
    "ToolExecutionError",
    "ToolNotFoundError",
    "WorkerNotFoundError",
    "WorkerResult",
    "to_json_value",
]
