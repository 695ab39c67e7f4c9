"""Unit tests for the cancellation token, bounded pool, timeout helper and rw-lock."""

from __future__ import annotations

import asyncio
import gc
import sys
import threading
import warnings
from contextlib import contextmanager
from typing import TYPE_CHECKING

import pytest

from conductor.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    ReadWriteLock,
    WorkerPool,
    run_cancellable,
    run_with_timeout,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextmanager
def _capture_unraisable() -> Iterator[list[object]]:
    captured: list[object] = []
    original = sys.unraisablehook
    sys.unraisablehook = captured.append
    try:
        yield captured
    finally:
        sys.unraisablehook = original


async def _value_after(delay: float, value: int) -> int:
    await asyncio.sleep(delay)
    return value


async def test_cancellation_token_raises_once_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    assert not token.is_cancelled

    token.cancel()

    assert token.is_cancelled
    with pytest.raises(asyncio.CancelledError):
        token.raise_if_cancelled()
    await asyncio.wait_for(token.wait(), timeout=1.0)


async def test_bounded_semaphore_tracks_peak_usage() -> None:
    semaphore = BoundedSemaphore(2)

    async def hold() -> None:
        async with semaphore.permit():
            await asyncio.sleep(0.01)

    await asyncio.gather(*(hold() for _ in range(5)))

    assert semaphore.peak == 2
    assert semaphore.in_use == 0
    assert semaphore.snapshot() == {"limit": 2, "in_use": 0, "available": 2, "peak": 2}


def test_bounded_semaphore_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        BoundedSemaphore(0)


async def test_worker_pool_never_exceeds_max_concurrency() -> None:
    active = 0
    peak = 0

    async def job(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return value

    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    results = [value async for value in pool.run(job(index) for index in range(6))]

    assert sorted(results) == list(range(6))
    assert peak == 2
    assert pool.semaphore.peak == 2


async def test_worker_pool_propagates_first_failure() -> None:
    async def boom() -> int:
        await asyncio.sleep(0)
        raise RuntimeError("boom")

    pool: WorkerPool[int] = WorkerPool(max_concurrency=3)
    with pytest.raises(RuntimeError, match="boom"):
        async for _ in pool.run([boom(), _value_after(0.5, 1)]):
            pass


async def test_worker_pool_stops_when_token_cancelled() -> None:
    token = CancellationToken()
    token.cancel()
    pool: WorkerPool[int] = WorkerPool(max_concurrency=1, cancel_token=token)

    with _capture_unraisable() as leaked, warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(asyncio.CancelledError):
            async for _ in pool.run([_value_after(0.01, 1), _value_after(0.01, 2)]):
                pass
        gc.collect()

    assert leaked == []


async def test_run_with_timeout_returns_value_in_time() -> None:
    assert await run_with_timeout(_value_after(0.0, 7), 1.0) == 7


async def test_run_with_timeout_raises_timeout_error() -> None:
    with pytest.raises(TimeoutError):
        await run_with_timeout(_value_after(0.5, 1), 0.01)


async def test_run_with_timeout_honours_token() -> None:
    token = CancellationToken()

    async def cancel_soon() -> None:
        await asyncio.sleep(0.01)
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(_value_after(1.0, 1), 5.0, token)
    await canceller


async def test_run_with_timeout_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError):
        await run_with_timeout(_value_after(0.0, 1), 0)


async def test_run_cancellable_without_token_just_awaits() -> None:
    assert await run_cancellable(_value_after(0.0, 3)) == 3


async def test_run_cancellable_aborts_on_cancel() -> None:
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.01, token.cancel)

    with pytest.raises(asyncio.CancelledError):
        await run_cancellable(_value_after(1.0, 1), token)


def test_read_write_lock_allows_concurrent_readers_and_exclusive_writer() -> None:
    lock = ReadWriteLock()
    readers_inside = threading.Barrier(2, timeout=2.0)
    events: list[str] = []

    def reader() -> None:
        with lock.read():
            # Both readers must be inside simultaneously for the barrier to release.
            readers_inside.wait()
            events.append("read")

    threads = [threading.Thread(target=reader) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=2.0)

    with lock.write():
        events.append("write")

    assert events == ["read", "read", "write"]
