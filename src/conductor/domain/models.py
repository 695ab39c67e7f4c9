"""Dataclass domain models for tasks, worker results, and the iteration audit log."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, StrEnum
from pathlib import PurePath
from typing import Final

from conductor.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

# Reserved context-bag key carrying feedback from the previous iteration.
FEEDBACK_CONTEXT_KEY: Final[str] = "_feedback"
# Reserved context-bag key carrying the resource ids gathered for an iteration.
GATHERED_CONTEXT_KEY: Final[str] = "_gathered_context"

_MAX_SNAPSHOT_DEPTH: Final[int] = 8
_MAX_SNAPSHOT_TEXT: Final[int] = 2048


class TaskOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OrchestratorState(StrEnum):
    IDLE = "idle"
    GATHERING = "gathering"
    ACTING = "acting"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    CONTINUE_WITH_FEEDBACK = "continue_with_feedback"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IterationPhase(StrEnum):
    GATHER = "gather"
    COMPACT = "compact"
    ACT = "act"
    VERIFY = "verify"
    COMPLETE = "complete"
    FEEDBACK = "feedback"
    ERROR = "error"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class Task:
    """Unit of work submitted by a caller.

    ``context`` is the mutable bag the orchestrator uses to carry feedback
    between iterations; workers receive derived copies and never touch it.
    """

    id: str
    type: str
    description: str
    context: dict[str, object] = field(default_factory=dict)
    priority: int = 0
    created_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("Task.id must be a non-empty string")
        if not isinstance(self.type, str) or not self.type.strip():
            raise ValueError("Task.type must be a non-empty string")
        if not isinstance(self.description, str):
            raise ValueError("Task.description must be a string")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValueError("Task.priority must be an integer")
        self.type = self.type.strip().lower()

    @classmethod
    def create(
        cls,
        task_type: str,
        description: str,
        *,
        context: Mapping[str, object] | None = None,
        priority: int = 0,
    ) -> Task:
        return cls(
            id=domain_ids.generate_task_id(),
            type=task_type,
            description=description,
            context=dict(context or {}),
            priority=priority,
        )

    @property
    def feedback(self) -> str | None:
        value = self.context.get(FEEDBACK_CONTEXT_KEY)
        return value if isinstance(value, str) and value else None

    def derive(
        self,
        role: str,
        iteration: int,
        *,
        extra_context: Mapping[str, object] | None = None,
    ) -> Task:
        """Return an isolated sub-task for one delegated worker."""
        context = dict(self.context)
        if extra_context:
            context.update(extra_context)
        return Task(
            id=domain_ids.derive_subtask_id(self.id, role, iteration),
            type=self.type,
            description=self.description,
            context=context,
            priority=self.priority,
        )


@dataclass(frozen=True, slots=True)
class WorkerResult:
    """Uniform result reported by every worker."""

    worker: str
    task_id: str
    success: bool
    artifacts: tuple[str, ...] = ()
    output: Mapping[str, object] = field(default_factory=dict)
    errors: tuple[str, ...] = ()
    attempts: int = 1
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "worker": self.worker,
            "task_id": self.task_id,
            "success": self.success,
            "artifacts": list(self.artifacts),
            "output": to_json_value(self.output),
            "errors": list(self.errors),
            "attempts": self.attempts,
            "duration_seconds": round(self.duration_seconds, 6),
        }


@dataclass(frozen=True, slots=True)
class ActionOutput:
    """Output of one Acting phase: the results of every dispatched worker."""

    results: tuple[WorkerResult, ...]
    worker_errors: Mapping[str, str] = field(default_factory=dict)
    required_roles: tuple[str, ...] = ()

    def result_for(self, worker: str) -> WorkerResult | None:
        for result in self.results:
            if result.worker == worker:
                return result
        return None

    @property
    def all_succeeded(self) -> bool:
        if self.worker_errors:
            return False
        return bool(self.results) and all(result.success for result in self.results)

    @property
    def artifacts(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for result in self.results:
            for artifact in result.artifacts:
                seen.setdefault(artifact, None)
        return tuple(seen)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "required_roles": list(self.required_roles),
            "results": [result.to_dict() for result in self.results],
            "worker_errors": {key: self.worker_errors[key] for key in sorted(self.worker_errors)},
        }


@dataclass(frozen=True, slots=True)
class IterationRecord:
    """Append-only audit entry for one phase of one iteration."""

    iteration: int
    phase: IterationPhase
    input_snapshot: JSONValue
    output_snapshot: JSONValue
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "iteration": self.iteration,
            "phase": self.phase.value,
            "input": self.input_snapshot,
            "output": self.output_snapshot,
            "timestamp": self.timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Final result of one top-level orchestrator run."""

    task_id: str
    outcome: TaskOutcome
    artifacts: tuple[str, ...]
    iterations: int
    duration_seconds: float
    errors: tuple[str, ...] = ()
    sub_results: tuple[WorkerResult, ...] = ()
    feedback: str | None = None
    iteration_log: tuple[IterationRecord, ...] = ()

    @property
    def success(self) -> bool:
        return self.outcome is TaskOutcome.COMPLETED

    def to_dict(self, *, include_log: bool = False) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "task_id": self.task_id,
            "success": self.success,
            "outcome": self.outcome.value,
            "artifacts": list(self.artifacts),
            "iterations": self.iterations,
            "duration_seconds": round(self.duration_seconds, 6),
            "errors": list(self.errors),
            "feedback": self.feedback,
            "sub_results": [result.to_dict() for result in self.sub_results],
        }
        if include_log:
            payload["iteration_log"] = [record.to_dict() for record in self.iteration_log]
        return payload

    def to_json(self, *, include_log: bool = False) -> str:
        return json.dumps(
            self.to_dict(include_log=include_log),
            sort_keys=True,
            indent=2,
            ensure_ascii=False,
        )


def to_json_value(value: object, *, depth: int = 0) -> JSONValue:
    """Coerce arbitrary snapshot payloads into bounded JSON-safe values."""

    if depth > _MAX_SNAPSHOT_DEPTH:
        return "<max depth>"
    if value is None or isinstance(value, (bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, str):
        if len(value) > _MAX_SNAPSHOT_TEXT:
            return value[:_MAX_SNAPSHOT_TEXT] + "...<truncated>"
        return value
    if isinstance(value, Enum):
        return to_json_value(value.value, depth=depth + 1)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, PurePath):
        return value.as_posix()
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_json_value(to_dict(), depth=depth + 1)
    if isinstance(value, Mapping):
        return {str(key): to_json_value(item, depth=depth + 1) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item, depth=depth + 1) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((to_json_value(item, depth=depth + 1) for item in value), key=repr)
    return repr(value)


__all__ = [
    "FEEDBACK_CONTEXT_KEY",
    "GATHERED_CONTEXT_KEY",
    "ActionOutput",
    "IterationPhase",
    "IterationRecord",
    "JSONValue",
    "OrchestratorState",
    "Task",
    "TaskOutcome",
    "TaskResult",
    "WorkerResult",
    "to_json_value",
]
