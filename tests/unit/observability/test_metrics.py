"""
conductor - unit tests for observability metrics

File: tests/unit/observability/test_metrics.py

Purpose
- Verify thread-safe metric updates and deterministic snapshot/export behavior.
"""

from __future__ import annotations

import json
import threading

import pytest

from conductor.observability.metrics import (
    ITERATIONS_TOTAL,
    TASK_DURATION_SECONDS,
    WORKER_FAILURES_TOTAL,
    MetricsRegistry,
)


def test_thread_safe_counter_increments() -> None:
    registry = MetricsRegistry()

    def worker() -> None:
        for _ in range(2000):
            registry.inc(ITERATIONS_TOTAL)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.get_counter(ITERATIONS_TOTAL) == 12_000.0


def test_snapshot_is_deterministic_and_json_serializable() -> None:
    registry = MetricsRegistry()
    registry.inc(WORKER_FAILURES_TOTAL, 2, labels={"worker": "code", "attempt": "1"})
    registry.set_gauge("context_store_bytes", 3)
    registry.observe(TASK_DURATION_SECONDS, 10, labels={"outcome": "completed"})
    registry.observe(TASK_DURATION_SECONDS, 20, labels={"outcome": "completed"})

    first = registry.snapshot()
    second = registry.snapshot()

    assert first == second
    payload = registry.to_json()
    assert "worker_failures_total{attempt=1,worker=code}" in payload
    distribution = json.loads(payload)["distributions"]["task_duration_seconds{outcome=completed}"]
    assert distribution == {"count": 2, "sum": 30.0, "min": 10.0, "max": 20.0, "avg": 15.0}


def test_timer_observes_even_when_block_raises() -> None:
    registry = MetricsRegistry()

    with pytest.raises(RuntimeError), registry.timer("tool_duration_seconds", labels={"tool": "read_file"}):
        raise RuntimeError("boom")

    observed = registry.get_distribution("tool_duration_seconds", labels={"tool": "read_file"})
    assert observed is not None
    assert observed["count"] == 1


def test_reset_clears_everything() -> None:
    registry = MetricsRegistry()
    registry.inc(ITERATIONS_TOTAL)
    registry.set_gauge("context_store_entries", 4)

    registry.reset()

    assert registry.get_counter(ITERATIONS_TOTAL) == 0.0
    assert registry.get_gauge("context_store_entries") is None


@pytest.mark.parametrize(
    ("action", "message"),
    [
        (lambda registry: registry.inc(ITERATIONS_TOTAL, -1), ">= 0"),
        (lambda registry: registry.set_gauge("g", float("nan")), "finite"),
        (lambda registry: registry.inc(" "), "must not be empty"),
        (lambda registry: registry.inc("c", labels={"worker": ""}), "non-empty"),
    ],
)
def test_invalid_updates_are_rejected(action: object, message: str) -> None:
    registry = MetricsRegistry()
    with pytest.raises(ValueError, match=message):
        action(registry)  # type: ignore[operator]
