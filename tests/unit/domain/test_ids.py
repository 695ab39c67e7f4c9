"""Unit tests for task/run ID helpers."""

from __future__ import annotations

import pytest

from conductor.domain import ids


def _ff_bytes(size: int) -> bytes:
    return b"\xff" * size


def test_generate_ulid_no_collision() -> None:
    generated = {ids.generate_ulid() for _ in range(5_000)}
    assert len(generated) == 5_000


def test_ulid_charset_and_length() -> None:
    value = ids.generate_ulid(timestamp_ms=123_456, randbytes=_ff_bytes)
    assert len(value) == ids.ULID_LENGTH
    assert all(char in ids.CROCKFORD_BASE32_ALPHABET for char in value)

    with pytest.raises(ValueError, match="ulid length must be"):
        ids.validate_ulid("0" * 25)
    with pytest.raises(ValueError, match="invalid ULID character"):
        ids.validate_ulid("U" + "0" * 25)


def test_ulid_sorts_by_timestamp() -> None:
    earlier = ids.generate_ulid(timestamp_ms=1_000)
    later = ids.generate_ulid(timestamp_ms=2_000)
    assert earlier < later


def test_prefixed_ids_validate_against_their_prefix() -> None:
    task_id = ids.generate_task_id()
    run_id = ids.generate_run_id()

    assert task_id.startswith("task-")
    assert run_id.startswith("run-")
    ids.validate_prefixed_id(task_id, ids.TASK_ID_PREFIX)
    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_prefixed_id(run_id, ids.TASK_ID_PREFIX)


def test_derive_subtask_id_and_parent_lookup() -> None:
    parent = ids.generate_task_id(timestamp_ms=42)
    child = ids.derive_subtask_id(parent, "search", 2)

    assert child == f"{parent}.search.2"
    assert ids.parent_task_id(child) == parent
    ids.validate_prefixed_id(child, ids.TASK_ID_PREFIX)


@pytest.mark.parametrize(("role", "iteration"), [("Search", 1), ("code-worker", 1), ("test", 0)])
def test_derive_subtask_id_rejects_bad_segments(role: str, iteration: int) -> None:
    with pytest.raises(ValueError):
        ids.derive_subtask_id("task-X", role, iteration)
