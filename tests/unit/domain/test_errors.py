from __future__ import annotations

from conductor.domain.errors import (
    ConductorError,
    ContextCapacityError,
    PhaseError,
    ToolExecutionError,
    ToolNotFoundError,
    WorkerNotFoundError,
)


def test_error_taxonomy_carries_context() -> None:
    capacity = ContextCapacityError("src/big.py", requested_bytes=200, available_bytes=50)
    phase = PhaseError("act", 2, "boom")
    tool = ToolExecutionError("read_file", "missing")

    assert isinstance(capacity, ConductorError)
    assert capacity.requested_bytes == 200
    assert capacity.available_bytes == 50
    assert "src/big.py" in str(capacity)
    assert phase.phase == "act"
    assert phase.iteration == 2
    assert str(phase) == "act phase failed in iteration 2: boom"
    assert tool.tool_name == "read_file"


def test_lookup_errors_are_lookup_errors() -> None:
    assert isinstance(ToolNotFoundError("x"), LookupError)
    assert isinstance(WorkerNotFoundError("y"), LookupError)
    assert WorkerNotFoundError("y").worker_name == "y"
