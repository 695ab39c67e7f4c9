"""Utility exports for filesystem and concurrency helpers."""

from conductor.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    ReadWriteLock,
    WorkerPool,
    run_cancellable,
    run_with_timeout,
)
from conductor.utils.fs import atomic_write, is_within, relative_posix, resolve_within

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "ReadWriteLock",
    "WorkerPool",
    "atomic_write",
    "is_within",
    "relative_posix",
    "resolve_within",
    "run_cancellable",
    "run_with_timeout",
]
