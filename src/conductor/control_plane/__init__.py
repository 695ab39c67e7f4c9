"""
conductor - control plane

File: src/conductor/control_plane/__init__.py

Purpose
- Export the orchestrator, validation rules, and task profiles.
- Wire one orchestrator (store, tools, workers) from an effective ``OrchestratorConfig``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from conductor.control_plane.orchestrator import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_PARALLEL_WORKERS,
    Orchestrator,
)
from conductor.control_plane.profiles import ProfileCatalog, TaskProfile, load_profiles_file
from conductor.control_plane.validation import (
    RuleResult,
    ValidationRule,
    builtin_rules,
    evaluate_rules,
    merge_rules,
)
from conductor.knowledge_plane.context_store import (
    ContextPolicy,
    ContextStore,
    RetentionWeights,
    ScoringWeights,
)
from conductor.tools import build_tool_registry
from conductor.workers import WorkerSettings, build_worker_registry

if TYPE_CHECKING:
    from conductor.config.schema import OrchestratorConfig
    from conductor.observability.metrics import MetricsRegistry


def context_policy_from_config(config: OrchestratorConfig) -> ContextPolicy:
    return ContextPolicy(
        trigger_ratio=config.compaction_trigger_ratio,
        target_ratio=config.compaction_target_ratio,
        min_index_token_length=config.min_index_token_length,
        min_query_token_length=config.min_query_token_length,
        max_results=config.max_search_results,
        structural_min_results=config.structural_min_results,
        scoring=ScoringWeights(**config.scoring),
        retention=RetentionWeights(**config.retention),
    )


def build_context_store(
    config: OrchestratorConfig,
    *,
    workspace: Path | str,
    metrics: MetricsRegistry | None = None,
    logger: Any | None = None,
) -> ContextStore:
    return ContextStore(
        config.capacity_bytes,
        policy=context_policy_from_config(config),
        auto_compact=config.enable_compaction,
        repo_root=Path(workspace),
        metrics=metrics,
        logger=logger,
    )


def build_orchestrator(
    config: OrchestratorConfig,
    *,
    workspace: Path | str,
    mock: bool = False,
    metrics: MetricsRegistry | None = None,
    logger: Any | None = None,
) -> Orchestrator:
    """Assemble a ready-to-run orchestrator rooted at ``workspace``.

    ``mock`` replaces the external test command with the offline simulated runner.
    """

    root = Path(workspace).resolve()
    store = build_context_store(config, workspace=root, metrics=metrics, logger=logger)
    tools = build_tool_registry(
        root,
        test_command=config.test_command,
        shell_allowlist=config.shell_allowlist,
        operation_timeout_seconds=config.operation_timeout_seconds,
        mock=mock,
        metrics=metrics,
        logger=logger,
    )
    settings = WorkerSettings(
        code_max_attempts=config.code_max_attempts,
        test_coverage_threshold=config.test_coverage_threshold,
        unresolved_markers=config.unresolved_markers,
        search_max_cached_files=config.search_max_cached_files,
    )
    workers = build_worker_registry(store, tools, settings=settings, logger=logger)
    rules = builtin_rules(coverage_threshold=config.test_coverage_threshold)
    profiles = ProfileCatalog.load(config.task_profiles, rules=rules)
    return Orchestrator(
        store=store,
        tools=tools,
        workers=workers,
        profiles=profiles,
        rules=rules,
        max_iterations=config.max_iterations,
        max_parallel_workers=config.max_parallel_workers,
        enable_compaction=config.enable_compaction,
        metrics=metrics,
        logger=logger,
    )


__all__ = [
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_MAX_PARALLEL_WORKERS",
    "Orchestrator",
    "ProfileCatalog",
    "RuleResult",
    "TaskProfile",
    "ValidationRule",
    "build_context_store",
    "build_orchestrator",
    "builtin_rules",
    "context_policy_from_config",
    "evaluate_rules",
    "load_profiles_file",
    "merge_rules",
]
