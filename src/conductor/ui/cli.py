"""Command-line interface router for conductor."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from conductor.config import (
    ConfigLoadError,
    ConfigValidationError,
    OrchestratorConfig,
    dump_effective_config,
    load_config,
)
from conductor.control_plane import build_context_store, build_orchestrator
from conductor.domain.errors import ContextCapacityError
from conductor.domain.ids import generate_run_id
from conductor.domain.models import Task, TaskOutcome
from conductor.knowledge_plane.scanner import RepositoryScanner
from conductor.observability import (
    LoggingConfig,
    MetricsRegistry,
    configure_structlog,
    correlation_scope,
    setup_structured_logging,
    shutdown_logging,
)
from conductor.ui.render import CLIRenderer, create_renderer
from conductor.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from conductor.control_plane.orchestrator import Orchestrator
    from conductor.domain.models import TaskResult

DEFAULT_INDEX_FILE_LIMIT = 2_000

EXIT_SUCCESS = 0
EXIT_TASK_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 3


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_TASK_FAILED

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="conductor",
        description=(
            "conductor - iterative multi-worker task orchestrator.\n\n"
            "Common workflows:\n"
            "  conductor search 'payment tests'                 Rank repository files for a query\n"
            "  conductor run --type feature 'add refunds' --mock Run the orchestrator offline\n"
            "  conductor config                                 Show the effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--workspace",
        default=".",
        help="Repository/workspace root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to conductor TOML config (default: ./conductor.toml if present).",
    )
    common.add_argument("--verbose", "-v", action="store_true", default=False, help="Show detailed output.")
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # search --------------------------------------------------------------
    search_parser = subparsers.add_parser(
        "search",
        parents=[common],
        help="Index repository files and print ranked matches for a query",
        description=(
            "Load workspace files into a context store and rank them for QUERY.\n\n"
            "Examples:\n"
            "  conductor search 'test payment'\n"
            "  conductor search 'user service' --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument(
        "--max-files",
        type=int,
        default=DEFAULT_INDEX_FILE_LIMIT,
        help=f"Maximum number of files to index (default: {DEFAULT_INDEX_FILE_LIMIT})",
    )
    search_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    search_parser.set_defaults(handler=_cmd_search)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run the orchestrator for one task",
        description=(
            "Run the gather/act/verify loop for a task and print the JSON task result.\n\n"
            "Examples:\n"
            "  conductor run --type search 'payment processing'\n"
            "  conductor run --type feature 'add refund endpoint' --mock\n"
            "  conductor run --type test 'cover the payment service' --max-iterations 2\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("description", help="Task description")
    run_parser.add_argument("--type", dest="task_type", required=True, help="Task type (e.g. search, code, test, feature)")
    run_parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the offline simulated test runner instead of the configured test command",
    )
    run_parser.add_argument("--max-iterations", type=int, default=None, help="Override orchestrator.max_iterations")
    run_parser.add_argument(
        "--max-parallel-workers",
        type=int,
        default=None,
        help="Override orchestrator.max_parallel_workers",
    )
    run_parser.add_argument(
        "--timeout",
        dest="operation_timeout_seconds",
        type=float,
        default=None,
        help="Override orchestrator.operation_timeout_seconds (0 disables)",
    )
    run_parser.add_argument("--profiles", dest="task_profiles", default=None, help="YAML task-profile file")
    run_parser.add_argument("--log-dir", dest="log_dir", default=None, help="Override observability.log_dir")
    run_parser.add_argument("--log", dest="include_log", action="store_true", help="Include the iteration log")
    run_parser.add_argument("--metrics", action="store_true", help="Include a metrics snapshot")
    run_parser.set_defaults(handler=_cmd_run)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration",
        description=(
            "Display the effective config after merging defaults, file, and env.\n\n"
            "Examples:\n"
            "  conductor config\n"
            "  conductor config --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_structlog()
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_search(args: argparse.Namespace) -> int:
    workspace = _workspace(args)
    _, config = _load_effective_config(args)
    max_files = _positive_int(getattr(args, "max_files", DEFAULT_INDEX_FILE_LIMIT), "--max-files")

    store = build_context_store(config, workspace=workspace)
    scanner = RepositoryScanner(workspace)
    indexed = 0
    skipped: list[str] = []
    for path in scanner.iter_files(limit=max_files):
        content = scanner.read_text(path)
        if content is None:
            continue
        try:
            store.insert(path, content)
        except ContextCapacityError:
            skipped.append(path)
            continue
        indexed += 1

    hits = store.search_hits(args.query)
    payload: dict[str, object] = {
        "command": "search",
        "query": args.query,
        "indexed": indexed,
        "skipped": len(skipped),
        "hits": [{"id": hit.id, "score": hit.score, "cached": hit.cached} for hit in hits],
    }
    if _flag(args, "json"):
        _emit_json(payload)
        return EXIT_SUCCESS

    renderer = _get_renderer(args)
    renderer.kv("Query", args.query)
    renderer.kv("Indexed files", indexed)
    if skipped and renderer.verbose:
        renderer.section("Skipped (over capacity):")
        renderer.items(skipped)
    if not hits:
        renderer.text("No matches.")
        return EXIT_SUCCESS
    renderer.section("Matches:")
    renderer.table(("score", "path"), [(f"{hit.score:.1f}", hit.id) for hit in hits])
    return EXIT_SUCCESS


def _cmd_run(args: argparse.Namespace) -> int:
    workspace = _workspace(args)
    overrides = {
        "orchestrator.max_iterations": getattr(args, "max_iterations", None),
        "orchestrator.max_parallel_workers": getattr(args, "max_parallel_workers", None),
        "orchestrator.operation_timeout_seconds": getattr(args, "operation_timeout_seconds", None),
        "orchestrator.task_profiles": _absolute_or_none(getattr(args, "task_profiles", None)),
        "observability.log_dir": _absolute_or_none(getattr(args, "log_dir", None)),
    }
    _, config = _load_effective_config(args, overrides)
    task_type = _require_str(getattr(args, "task_type", None), "--type")
    description = _require_str(getattr(args, "description", None), "description")

    run_id = generate_run_id()
    logging_handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=config.log_dir,
            level=config.log_level,
            log_to_stdout=config.log_to_stdout and _flag(args, "verbose"),
        )
    )
    logger = structlog.get_logger("conductor.ui.cli")
    metrics = MetricsRegistry()
    try:
        try:
            orchestrator = build_orchestrator(
                config,
                workspace=workspace,
                mock=_flag(args, "mock"),
                metrics=metrics,
            )
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc

        task = Task.create(task_type, description)
        with correlation_scope(run_id=run_id):
            logger.info("cli_run_started", task_id=task.id, task_type=task.type, workspace=str(workspace))
            result = asyncio.run(_execute_with_interrupts(orchestrator, task))
            logger.info("cli_run_finished", task_id=task.id, outcome=result.outcome.value)
    finally:
        shutdown_logging(logging_handle)

    payload: dict[str, Any] = {"run_id": run_id, **result.to_dict(include_log=_flag(args, "include_log"))}
    if _flag(args, "metrics"):
        payload["metrics"] = metrics.snapshot()
    print(json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False))

    if result.outcome is TaskOutcome.COMPLETED:
        return EXIT_SUCCESS
    if result.outcome is TaskOutcome.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_TASK_FAILED


def _cmd_config(args: argparse.Namespace) -> int:
    raw, _ = _load_effective_config(args)
    if _flag(args, "json"):
        _emit_json({"command": "config", "config": raw})
        return EXIT_SUCCESS

    renderer = _get_renderer(args)
    renderer.text(dump_effective_config(raw))
    return EXIT_SUCCESS


async def _execute_with_interrupts(orchestrator: Orchestrator, task: Task) -> TaskResult:
    """Run ``task``; SIGINT/SIGTERM cancel the token instead of killing the loop."""

    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(signum, token.cancel)
            installed.append(signum)
    try:
        return await orchestrator.execute(task, cancel_token=token)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _workspace(args: argparse.Namespace) -> Path:
    raw = _require_str(getattr(args, "workspace", None), "--workspace")
    candidate = Path(raw).expanduser().resolve()
    if not candidate.is_dir():
        raise CLIError(f"workspace is not a directory: {candidate}", exit_code=EXIT_CONFIG_ERROR)
    return candidate


def _load_effective_config(
    args: argparse.Namespace,
    overrides: Mapping[str, object] | None = None,
) -> tuple[dict[str, Any], OrchestratorConfig]:
    config_path = getattr(args, "config_path", None)
    try:
        loaded = load_config(config_path, cli_overrides=overrides)
        return loaded, OrchestratorConfig.from_mapping(loaded)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc


def _absolute_or_none(value: object) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return Path(value).expanduser().resolve().as_posix()


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CLIError(f"{name} must be a non-empty string", exit_code=EXIT_CONFIG_ERROR)
    return value.strip()


def _positive_int(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise CLIError(f"{name} must be a positive integer", exit_code=EXIT_CONFIG_ERROR)
    return value


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
