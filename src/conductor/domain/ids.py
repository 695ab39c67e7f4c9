"""Canonical ID generation and validation for tasks and runs."""

from __future__ import annotations

import re
import secrets
import time
from collections.abc import Callable
from typing import Final

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
ULID_MAX_TIMESTAMP_MS: Final[int] = (1 << 48) - 1
_PREFIX_SEPARATOR: Final[str] = "-"
_SUBTASK_SEPARATOR: Final[str] = "."

# Stable entity ID prefixes.
TASK_ID_PREFIX: Final[str] = "task"
RUN_ID_PREFIX: Final[str] = "run"

_SUBTASK_SEGMENT_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_]*$")
_DECODE_TABLE: Final[dict[str, int]] = {
    char: index for index, char in enumerate(CROCKFORD_BASE32_ALPHABET)
}

_RandBytes = Callable[[int], bytes]

__all__ = [
    "RUN_ID_PREFIX",
    "TASK_ID_PREFIX",
    "ULID_LENGTH",
    "derive_subtask_id",
    "generate_prefixed_id",
    "generate_run_id",
    "generate_task_id",
    "generate_ulid",
    "parent_task_id",
    "validate_prefixed_id",
    "validate_ulid",
]


def generate_ulid(
    *,
    timestamp_ms: int | None = None,
    randbytes: _RandBytes | None = None,
) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = time.time_ns() // 1_000_000 if timestamp_ms is None else timestamp_ms
    if not 0 <= ts_ms <= ULID_MAX_TIMESTAMP_MS:
        raise ValueError(f"timestamp_ms out of range: expected 0..{ULID_MAX_TIMESTAMP_MS}")
    provider = secrets.token_bytes if randbytes is None else randbytes
    random_bytes = bytes(provider(ULID_RANDOM_BYTES))
    if len(random_bytes) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return exactly {ULID_RANDOM_BYTES} bytes")

    value = (ts_ms << 80) | int.from_bytes(random_bytes, "big")
    chars = ["0"] * ULID_LENGTH
    for index in range(ULID_LENGTH - 1, -1, -1):
        chars[index] = CROCKFORD_BASE32_ALPHABET[value & 0b11111]
        value >>= 5
    return "".join(chars)


def validate_ulid(value: str) -> None:
    """Validate a ULID and raise ``ValueError`` with precise context on failure."""
    if not isinstance(value, str):
        raise ValueError(f"ulid must be a string, got {type(value).__name__}")
    if len(value) != ULID_LENGTH:
        raise ValueError(f"ulid length must be {ULID_LENGTH}, got {len(value)}")
    for index, char in enumerate(value):
        if char.upper() not in _DECODE_TABLE:
            raise ValueError(f"invalid ULID character {char!r} at index {index}")


def generate_prefixed_id(prefix: str, *, timestamp_ms: int | None = None) -> str:
    """Generate a stable prefixed ID in the form ``<prefix>-<ulid>``."""
    if not prefix or _PREFIX_SEPARATOR in prefix:
        raise ValueError(f"prefix must be non-empty and must not contain '{_PREFIX_SEPARATOR}'")
    return f"{prefix}{_PREFIX_SEPARATOR}{generate_ulid(timestamp_ms=timestamp_ms)}"


def validate_prefixed_id(id_str: str, expected_prefix: str) -> None:
    """Validate ``<prefix>-<ulid>`` format and enforce ``expected_prefix``."""
    expected_lead = f"{expected_prefix}{_PREFIX_SEPARATOR}"
    if not isinstance(id_str, str) or not id_str.startswith(expected_lead):
        raise ValueError(f"expected prefix '{expected_lead}'")
    root = id_str[len(expected_lead) :].split(_SUBTASK_SEPARATOR, 1)[0]
    validate_ulid(root)


def generate_task_id(*, timestamp_ms: int | None = None) -> str:
    return generate_prefixed_id(TASK_ID_PREFIX, timestamp_ms=timestamp_ms)


def generate_run_id(*, timestamp_ms: int | None = None) -> str:
    return generate_prefixed_id(RUN_ID_PREFIX, timestamp_ms=timestamp_ms)


def derive_subtask_id(parent_id: str, role: str, iteration: int) -> str:
    """Derive a delegated sub-task ID: ``<parent>.<role>.<iteration>``."""
    if not isinstance(parent_id, str) or not parent_id.strip():
        raise ValueError("parent_id must be a non-empty string")
    if not _SUBTASK_SEGMENT_RE.fullmatch(role):
        raise ValueError(f"role must match {_SUBTASK_SEGMENT_RE.pattern} (got {role!r})")
    if iteration < 1:
        raise ValueError("iteration must be >= 1")
    return _SUBTASK_SEPARATOR.join((parent_id.strip(), role, str(iteration)))


def parent_task_id(task_id: str) -> str:
    """Return the root task ID a derived sub-task ID was created from."""
    return task_id.split(_SUBTASK_SEPARATOR, 1)[0]
