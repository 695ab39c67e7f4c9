"""
conductor - unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate structured JSON logging with redaction, correlation metadata, and queue-backed reliability.

What this test file should cover
- JSON line validity and redaction guarantees.
- Correlation field propagation through structlog and stdlib loggers.
- Queue drain/shutdown behavior.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import structlog

from conductor.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"conductor.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines]


def test_json_logging_redacts_secrets_and_preserves_correlation_fields(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-logging-redaction",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            log_to_stdout=False,
        )
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(task_id="task-123", iteration=2):
        logger.info(
            "payload token=tok-FAKE and api_key=sk-FAKE123456789012345",
            extra={"nested": {"password": "hunter2", "safe": "ok"}},
        )

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "run-logging-redaction" / "conductor.jsonl"
    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    first = parsed[0]
    assert first["run_id"] == "run-logging-redaction"
    assert first["task_id"] == "task-123"
    assert first["iteration"] == "2"
    assert first["fields"] == {"nested": {"password": "***REDACTED***", "safe": "ok"}}

    line = handle.log_path.read_text(encoding="utf-8")
    assert "tok-FAKE" not in line
    assert "sk-FAKE" not in line
    assert "hunter2" not in line


def test_structlog_events_render_fields_and_rename_reserved_keys(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(run_id="run-structlog", base_log_dir=tmp_path, logger_name=logger_name, log_to_stdout=False)
    )
    logger = structlog.get_logger(logger_name)

    with correlation_scope(worker="code"):
        logger.info("worker_finished", success=True, filename="pkg/refund.py", artifacts=1)
    logger.debug("below_threshold")

    shutdown_logging(handle)

    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 1
    event = parsed[0]
    assert event["message"] == "worker_finished"
    assert event["level"] == "INFO"
    assert event["worker"] == "code"
    assert event["fields"] == {"artifacts": 1, "filename_": "pkg/refund.py", "success": True}


def test_correlation_scope_nests_and_restores() -> None:
    with correlation_scope(task_id="task-1"):
        with correlation_scope(iteration=1, worker="search"):
            assert get_correlation_context() == {"task_id": "task-1", "iteration": "1", "worker": "search"}
        with correlation_scope(task_id=None):
            assert get_correlation_context() == {}
        assert get_correlation_context() == {"task_id": "task-1"}
    assert get_correlation_context() == {}


def test_multithreaded_logging_produces_valid_json_lines(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-threaded",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            log_to_stdout=False,
            queue_size=4096,
        )
    )
    logger = logging.getLogger(logger_name)

    total_threads = 8
    per_thread = 40

    def worker(thread_idx: int) -> None:
        for i in range(per_thread):
            logger.info(
                f"thread={thread_idx} index={i} token=tok-secret-{thread_idx}-{i}",
                extra={"api_key": f"sk-FAKE-{thread_idx}-{i}"},
            )

    threads = [threading.Thread(target=worker, args=(idx,)) for idx in range(total_threads)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == total_threads * per_thread
    for line in lines:
        assert "message" in json.loads(line)
        assert "tok-secret" not in line
        assert "sk-FAKE" not in line


def test_queue_handler_non_blocking_and_shutdown_flushes(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(
            run_id="run-flush",
            base_log_dir=tmp_path,
            logger_name=logger_name,
            log_to_stdout=False,
            queue_size=10_000,
        )
    )
    logger = logging.getLogger(logger_name)

    queue_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.QueueHandler)]
    assert queue_handlers, "expected queue-backed non-blocking logging"

    expected = 300
    for i in range(expected):
        logger.info("message %s", i)

    shutdown_logging(handle)

    lines = handle.log_path.read_text(encoding="utf-8").splitlines()
    assert handle.dropped_records == 0
    assert len(lines) == expected
    assert handle.is_shutdown
    assert get_active_logging_handle() is None


def test_new_setup_replaces_previous_handle(tmp_path: Path) -> None:
    first = setup_structured_logging(
        LoggingConfig(run_id="run-a", base_log_dir=tmp_path, logger_name=_logger_name(), log_to_stdout=False)
    )
    second = setup_structured_logging(
        LoggingConfig(run_id="run-b", base_log_dir=tmp_path, logger_name=_logger_name(), log_to_stdout=False)
    )

    assert first.is_shutdown
    assert get_active_logging_handle() is second


def test_logging_config_from_observability_section() -> None:
    config = LoggingConfig.from_observability(
        {"log_level": "DEBUG", "log_dir": "/tmp/conductor-logs", "log_to_stdout": True},
        run_id="run-x",
        log_to_stdout=False,
    )

    assert config.level == "DEBUG"
    assert config.base_log_dir == "/tmp/conductor-logs"
    assert config.log_to_stdout is False


@pytest.mark.parametrize(
    "overrides",
    [{"run_id": " "}, {"log_filename": "nested/run.jsonl"}, {"queue_size": 0}, {"level": "LOUD"}],
)
def test_invalid_logging_config_is_rejected(tmp_path: Path, overrides: dict[str, object]) -> None:
    values: dict[str, object] = {"run_id": "run-bad", "base_log_dir": tmp_path, "log_to_stdout": False}
    values.update(overrides)

    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(**values))  # type: ignore[arg-type]
