"""
conductor - orchestrator

File: src/conductor/control_plane/orchestrator.py

Purpose
- Drives the bounded gather -> act -> verify loop for one top-level task.
- Delegates to workers sequentially or under a bounded concurrency cap.
- Threads validation feedback into the next iteration through the task's context bag.

Functional requirements
- States: idle -> gathering -> acting -> verifying -> {complete | continue_with_feedback},
  looping until complete or ``max_iterations`` is exhausted (failed); token
  cancellation ends the run as cancelled.
- A failing worker is logged and excluded without aborting its siblings.
- Phase errors abandon the current iteration only; exhaustion is a result, not an exception.
- Every phase appends an immutable IterationRecord.
- The store's repository snapshot is refreshed off the event loop at the start of each gather.

Non-functional requirements
- Iterations are strictly sequential; only intra-iteration worker dispatch is concurrent.
- Never more than ``max_parallel_workers`` worker executions in flight.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from conductor.control_plane.profiles import ProfileCatalog, TaskProfile
from conductor.control_plane.validation import builtin_rules, evaluate_rules
from conductor.domain.errors import PhaseError
from conductor.domain.models import (
    FEEDBACK_CONTEXT_KEY,
    GATHERED_CONTEXT_KEY,
    ActionOutput,
    IterationPhase,
    IterationRecord,
    OrchestratorState,
    TaskOutcome,
    TaskResult,
    WorkerResult,
    to_json_value,
)
from conductor.observability.logging import correlation_scope
from conductor.observability.metrics import (
    ITERATIONS_TOTAL,
    TASK_DURATION_SECONDS,
    WORKER_FAILURES_TOTAL,
)
from conductor.utils.concurrency import WorkerPool

if TYPE_CHECKING:
    from conductor.control_plane.validation import ValidationRule
    from conductor.domain.models import JSONValue, Task
    from conductor.knowledge_plane.context_store import ContextStore
    from conductor.observability.metrics import MetricsRegistry
    from conductor.tools.registry import ToolRegistry
    from conductor.utils.concurrency import CancellationToken
    from conductor.workers.registry import WorkerRegistry

DEFAULT_MAX_ITERATIONS = 5
DEFAULT_MAX_PARALLEL_WORKERS = 3


@dataclass(frozen=True, slots=True)
class GatherOutput:
    context_ids: tuple[str, ...]
    feedback: str | None
    profile: TaskProfile


@dataclass(frozen=True, slots=True)
class Verdict:
    complete: bool
    artifacts: tuple[str, ...] = ()
    feedback: str = ""
    failed_rule: str | None = None


@dataclass(slots=True)
class _Run:
    """State and audit log owned by one ``execute`` call."""

    task_id: str
    state: OrchestratorState = OrchestratorState.IDLE
    log: list[IterationRecord] = field(default_factory=list)


_WorkerOutcome = tuple[str, WorkerResult | None, str | None]


class Orchestrator:
    """Supervisor owning the context store, tool registry, and worker registry."""

    def __init__(
        self,
        *,
        store: ContextStore,
        tools: ToolRegistry,
        workers: WorkerRegistry,
        profiles: ProfileCatalog | None = None,
        rules: Mapping[str, ValidationRule] | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_parallel_workers: int = DEFAULT_MAX_PARALLEL_WORKERS,
        enable_compaction: bool = True,
        metrics: MetricsRegistry | None = None,
        logger: Any | None = None,
    ) -> None:
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations <= 0:
            raise ValueError("max_iterations must be an integer > 0")
        if (
            isinstance(max_parallel_workers, bool)
            or not isinstance(max_parallel_workers, int)
            or max_parallel_workers <= 0
        ):
            raise ValueError("max_parallel_workers must be an integer > 0")

        self._store = store
        self._tools = tools
        self._workers = workers
        self._rules = rules if rules is not None else builtin_rules()
        self._profiles = profiles if profiles is not None else ProfileCatalog.default(self._rules)
        self._max_iterations = max_iterations
        self._max_parallel = max_parallel_workers
        self._enable_compaction = enable_compaction
        self._metrics = metrics
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._last_run: _Run | None = None

    @property
    def state(self) -> OrchestratorState:
        """State of the most recently started run."""

        return self._last_run.state if self._last_run is not None else OrchestratorState.IDLE

    @property
    def store(self) -> ContextStore:
        return self._store

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def workers(self) -> WorkerRegistry:
        return self._workers

    @property
    def iteration_log(self) -> tuple[IterationRecord, ...]:
        """Audit log of the most recently started run."""

        return tuple(self._last_run.log) if self._last_run is not None else ()

    async def execute(
        self,
        task: Task,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> TaskResult:
        """Run the loop for ``task`` until complete, exhausted, or cancelled."""

        started = time.perf_counter()
        run = _Run(task_id=task.id)
        self._last_run = run
        errors: list[str] = []
        sub_results: list[WorkerResult] = []
        artifacts: tuple[str, ...] = ()
        feedback: str | None = None
        outcome = TaskOutcome.FAILED
        iterations = 0

        self._logger.info(
            "orchestrator_task_started",
            task_id=task.id,
            task_type=task.type,
            max_iterations=self._max_iterations,
        )
        try:
            with correlation_scope(task_id=task.id):
                for iteration in range(1, self._max_iterations + 1):
                    iterations = iteration
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    if self._metrics is not None:
                        self._metrics.inc(ITERATIONS_TOTAL)

                    with correlation_scope(iteration=iteration):
                        try:
                            verdict, results = await self._run_iteration(run, task, iteration, cancel_token)
                        except PhaseError as exc:
                            errors.append(str(exc))
                            self._record(
                                run,
                                iteration,
                                IterationPhase.ERROR,
                                {"phase": exc.phase},
                                {"error": str(exc)},
                            )
                            self._logger.warning(
                                "orchestrator_phase_failed",
                                phase=exc.phase,
                                iteration=iteration,
                                error=str(exc),
                            )
                            continue

                    sub_results.extend(results)
                    if verdict.complete:
                        artifacts = verdict.artifacts
                        outcome = TaskOutcome.COMPLETED
                        feedback = None
                        self._transition(run, OrchestratorState.COMPLETE)
                        self._record(
                            run,
                            iteration,
                            IterationPhase.COMPLETE,
                            {"artifacts": len(verdict.artifacts)},
                            {"artifacts": list(verdict.artifacts)},
                        )
                        self._logger.info(
                            "orchestrator_iteration_complete",
                            iteration=iteration,
                            artifacts=len(verdict.artifacts),
                        )
                        break

                    feedback = verdict.feedback
                    task.context[FEEDBACK_CONTEXT_KEY] = feedback
                    errors.append(f"iteration {iteration}: {feedback}")
                    self._transition(run, OrchestratorState.CONTINUE_WITH_FEEDBACK)
                    self._record(
                        run,
                        iteration,
                        IterationPhase.FEEDBACK,
                        {"failed_rule": verdict.failed_rule},
                        {"feedback": feedback},
                    )
                    self._logger.info(
                        "orchestrator_iteration_incomplete",
                        iteration=iteration,
                        failed_rule=verdict.failed_rule,
                        feedback=feedback,
                    )
        except asyncio.CancelledError:
            if cancel_token is None or not cancel_token.is_cancelled:
                self._transition(run, OrchestratorState.CANCELLED)
                raise
            outcome = TaskOutcome.CANCELLED
            errors.append("task cancelled")
            self._logger.info("orchestrator_task_cancelled", task_id=task.id, iteration=iterations)

        if outcome is TaskOutcome.FAILED:
            self._transition(run, OrchestratorState.FAILED)
            self._logger.warning(
                "orchestrator_iterations_exhausted",
                task_id=task.id,
                iterations=iterations,
                errors=len(errors),
            )
        elif outcome is TaskOutcome.CANCELLED:
            self._transition(run, OrchestratorState.CANCELLED)

        duration = time.perf_counter() - started
        if self._metrics is not None:
            self._metrics.observe(TASK_DURATION_SECONDS, duration, labels={"outcome": outcome.value})
        self._logger.info(
            "orchestrator_task_finished",
            task_id=task.id,
            outcome=outcome.value,
            iterations=iterations,
            duration_seconds=round(duration, 6),
        )
        return TaskResult(
            task_id=task.id,
            outcome=outcome,
            artifacts=artifacts,
            iterations=iterations,
            duration_seconds=duration,
            errors=tuple(errors),
            sub_results=tuple(sub_results),
            feedback=feedback,
            iteration_log=tuple(run.log),
        )

    async def _run_iteration(
        self,
        run: _Run,
        task: Task,
        iteration: int,
        cancel_token: CancellationToken | None,
    ) -> tuple[Verdict, tuple[WorkerResult, ...]]:
        self._transition(run, OrchestratorState.GATHERING)
        try:
            await asyncio.to_thread(self._store.rescan)
            gathered = self._gather(run, task, iteration)
        except Exception as exc:
            raise PhaseError(IterationPhase.GATHER.value, iteration, _describe(exc)) from exc

        self._maybe_compact(run, iteration)

        self._transition(run, OrchestratorState.ACTING)
        try:
            action = await self._act(run, task, gathered, iteration, cancel_token)
        except Exception as exc:
            raise PhaseError(IterationPhase.ACT.value, iteration, _describe(exc)) from exc

        self._transition(run, OrchestratorState.VERIFYING)
        try:
            verdict = self._verify(run, gathered.profile, action, iteration)
        except Exception as exc:
            raise PhaseError(IterationPhase.VERIFY.value, iteration, _describe(exc)) from exc
        return verdict, action.results

    def _gather(self, run: _Run, task: Task, iteration: int) -> GatherOutput:
        context_ids = tuple(self._store.search(task.description))
        feedback = task.feedback
        profile = self._profiles.resolve(task.type, self._workers.names())
        self._record(
            run,
            iteration,
            IterationPhase.GATHER,
            {"description": task.description, "task_type": task.type, "feedback": feedback},
            {"context": list(context_ids), "roles": list(profile.roles), "rules": list(profile.rule_names)},
        )
        return GatherOutput(context_ids=context_ids, feedback=feedback, profile=profile)

    def _maybe_compact(self, run: _Run, iteration: int) -> None:
        if not self._enable_compaction:
            return
        try:
            if not self._store.should_compact():
                return
            before = self._store.stats()
            report = self._store.compact()
        except Exception as exc:
            self._logger.warning("orchestrator_compaction_failed", iteration=iteration, error=_describe(exc))
            return
        self._record(
            run,
            iteration,
            IterationPhase.COMPACT,
            {"bytes": before.current_size, "entries": before.entries},
            {"evicted": list(report.evicted), "bytes": report.bytes_after},
        )

    async def _act(
        self,
        run: _Run,
        task: Task,
        gathered: GatherOutput,
        iteration: int,
        cancel_token: CancellationToken | None,
    ) -> ActionOutput:
        roles = gathered.profile.roles
        parallel = len(roles) > 1 and self._max_parallel > 1
        outcomes: list[_WorkerOutcome] = []

        if parallel:
            pool: WorkerPool[_WorkerOutcome] = WorkerPool(
                max_concurrency=self._max_parallel, cancel_token=cancel_token
            )
            async for outcome in pool.run(
                self._run_worker(task, role, gathered, iteration, cancel_token) for role in roles
            ):
                outcomes.append(outcome)
        else:
            for role in roles:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                outcomes.append(await self._run_worker(task, role, gathered, iteration, cancel_token))

        order = {role: index for index, role in enumerate(roles)}
        outcomes.sort(key=lambda item: order[item[0]])
        action = ActionOutput(
            results=tuple(result for _, result, _ in outcomes if result is not None),
            worker_errors={role: error for role, _, error in outcomes if error is not None},
            required_roles=roles,
        )
        self._record(
            run,
            iteration,
            IterationPhase.ACT,
            {"roles": list(roles), "parallel": parallel, "max_parallel_workers": self._max_parallel},
            action.to_dict(),
        )
        return action

    async def _run_worker(
        self,
        task: Task,
        role: str,
        gathered: GatherOutput,
        iteration: int,
        cancel_token: CancellationToken | None,
    ) -> _WorkerOutcome:
        try:
            sub_task = task.derive(
                role,
                iteration,
                extra_context={GATHERED_CONTEXT_KEY: list(gathered.context_ids)},
            )
            worker = self._workers.get(role)
            with correlation_scope(worker=role):
                result = await worker.execute(sub_task, cancel_token=cancel_token)
        except Exception as exc:
            if self._metrics is not None:
                self._metrics.inc(WORKER_FAILURES_TOTAL, labels={"worker": role})
            self._logger.warning(
                "worker_failed",
                worker=role,
                task_id=task.id,
                iteration=iteration,
                error=_describe(exc),
            )
            return role, None, _describe(exc)

        if not result.success and self._metrics is not None:
            self._metrics.inc(WORKER_FAILURES_TOTAL, labels={"worker": role})
        return role, result, None

    def _verify(self, run: _Run, profile: TaskProfile, action: ActionOutput, iteration: int) -> Verdict:
        failed_rule, rule_result = evaluate_rules(profile.rules, action)
        if failed_rule is not None:
            verdict = Verdict(complete=False, feedback=rule_result.feedback, failed_rule=failed_rule)
        else:
            artifacts = action.artifacts
            if not action.all_succeeded:
                verdict = Verdict(complete=False, feedback=_unsuccessful_feedback(action))
            elif not artifacts:
                verdict = Verdict(complete=False, feedback="no artifacts were produced")
            else:
                verdict = Verdict(complete=True, artifacts=artifacts)

        self._record(
            run,
            iteration,
            IterationPhase.VERIFY,
            {"rules": list(profile.rule_names)},
            {
                "complete": verdict.complete,
                "failed_rule": verdict.failed_rule,
                "feedback": verdict.feedback,
                "artifacts": list(verdict.artifacts),
            },
        )
        return verdict

    def _transition(self, run: _Run, state: OrchestratorState) -> None:
        if state is run.state:
            return
        self._logger.debug(
            "orchestrator_state_changed",
            task_id=run.task_id,
            previous=run.state.value,
            current=state.value,
        )
        run.state = state

    def _record(
        self,
        run: _Run,
        iteration: int,
        phase: IterationPhase,
        input_snapshot: object,
        output_snapshot: object,
    ) -> None:
        input_value: JSONValue = to_json_value(input_snapshot)
        output_value: JSONValue = to_json_value(output_snapshot)
        run.log.append(
            IterationRecord(
                iteration=iteration,
                phase=phase,
                input_snapshot=input_value,
                output_snapshot=output_value,
            )
        )


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


def _unsuccessful_feedback(action: ActionOutput) -> str:
    parts: list[str] = []
    for result in action.results:
        if not result.success:
            reason = "; ".join(result.errors) or "no reason given"
            parts.append(f"{result.worker} failed: {reason}")
    for role, error in sorted(action.worker_errors.items()):
        parts.append(f"{role} errored: {error}")
    return " | ".join(parts) or "not every worker succeeded"


__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_MAX_PARALLEL_WORKERS",
    "GatherOutput",
    "Orchestrator",
    "Verdict",
]
