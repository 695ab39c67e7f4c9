"""
conductor - context store unit tests

File: tests/unit/knowledge_plane/test_context_store.py

Purpose
- Capacity bound, compaction, search ranking and index lockstep of ``ContextStore``.
"""

from __future__ import annotations

import contextlib
import itertools
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conductor.domain.errors import ContextCapacityError
from conductor.knowledge_plane.context_store import (
    ContextPolicy,
    ContextStore,
    RetentionWeights,
    ScoringWeights,
)
from conductor.knowledge_plane.scanner import RepositoryScanner
from conductor.observability.metrics import MetricsRegistry

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

pytestmark = pytest.mark.unit


def _ticking_clock() -> Callable[[], datetime]:
    start = datetime(2026, 1, 1, tzinfo=UTC)
    counter = itertools.count()
    return lambda: start + timedelta(seconds=next(counter))


def _store(capacity: int = 100, **kwargs: object) -> ContextStore:
    return ContextStore(capacity, clock=_ticking_clock(), **kwargs)  # type: ignore[arg-type]


def test_insert_near_capacity_compacts_then_fits() -> None:
    metrics = MetricsRegistry()
    store = _store(metrics=metrics)
    for name in ("a.py", "b.py", "c.py"):
        store.insert(name, "x" * 30)
    assert store.current_size == 90

    store.insert("d.py", "y" * 20)

    assert store.current_size <= store.capacity
    assert store.current_size == 80
    assert "a.py" not in store
    assert "d.py" in store
    stats = store.stats()
    assert stats.compactions == 1
    assert stats.evictions == 1
    assert metrics.get_counter("compactions_total") == 1
    assert metrics.get_counter("context_evictions_total") == 1
    assert metrics.get_gauge("context_store_bytes") == 80


def test_insert_without_auto_compaction_rejects_overflow() -> None:
    store = _store(auto_compact=False)
    for name in ("a.py", "b.py", "c.py"):
        store.insert(name, "x" * 30)

    with pytest.raises(ContextCapacityError) as excinfo:
        store.insert("d.py", "y" * 20)

    assert excinfo.value.requested_bytes == 20
    assert excinfo.value.available_bytes == 10
    assert store.current_size == 90
    assert store.ids() == ["a.py", "b.py", "c.py"]


def test_resource_larger_than_capacity_is_rejected_without_compaction() -> None:
    store = _store()
    store.insert("keep.py", "k" * 40)

    with pytest.raises(ContextCapacityError):
        store.insert("huge.bin", "z" * 101)

    assert "keep.py" in store
    assert store.stats().compactions == 0


def test_reinsert_replaces_content_and_index_tokens() -> None:
    store = _store(1_000)
    store.insert("src/pay.py", "def refund(): pass", relevance=2.5)
    store.insert("src/pay.py", "def charge(): pass")

    assert store.current_size == len("def charge(): pass")
    assert store.indexed_ids("refund") == frozenset()
    assert store.indexed_ids("charge") == frozenset({"src/pay.py"})
    resource = store.peek("src/pay.py")
    assert resource is not None
    assert resource.relevance == 2.5


def test_removed_resource_leaves_no_index_entries() -> None:
    store = _store(1_000)
    store.insert("src/wallet.py", "balance ledger")

    assert store.remove("src/wallet.py")
    assert not store.remove("src/wallet.py")
    assert store.indexed_ids("balance") == frozenset()
    assert store.indexed_ids("wallet") == frozenset()
    assert store.stats().indexed_tokens == 0
    assert store.stats().evictions == 0


def test_get_bumps_access_statistics_monotonically() -> None:
    store = _store(1_000)
    store.insert("a.py", "alpha")

    first = store.get("a.py")
    second = store.get("a.py")

    assert first is not None and second is not None
    assert (first.access_count, second.access_count) == (1, 2)
    assert second.last_accessed >= first.last_accessed
    assert store.get("missing.py") is None
    stats = store.stats()
    assert (stats.hits, stats.misses) == (2, 1)


def test_peek_does_not_touch_statistics() -> None:
    store = _store(1_000)
    store.insert("a.py", "alpha")

    snapshot = store.peek("a.py")

    assert snapshot is not None
    assert snapshot.access_count == 0
    assert store.stats().hits == 0


def test_compaction_prefers_evicting_cold_resources() -> None:
    store = _store(100)
    store.insert("hot.py", "h" * 30)
    store.insert("cold.py", "c" * 30)
    store.insert("warm.py", "w" * 25)
    store.get("hot.py")
    store.get("warm.py")

    report = store.compact()

    assert report.evicted == ("cold.py",)
    assert report.bytes_before == 85
    assert report.bytes_after == 55
    assert report.target_bytes == 70
    assert report.reached_target


def test_compaction_may_evict_everything() -> None:
    store = _store(100)
    store.insert("only.py", "o" * 90)

    report = store.compact()

    assert report.evicted == ("only.py",)
    assert store.current_size == 0
    assert len(store) == 0


def test_should_compact_uses_trigger_ratio() -> None:
    store = _store(100)
    store.insert("a.py", "a" * 79)
    assert not store.should_compact()
    store.insert("b.py", "b")
    assert store.should_compact()


def test_search_ranks_filename_matches_above_directory_matches() -> None:
    store = _store(10_000)
    store.insert("backend/payment/services/wallet.go", "package services")
    store.insert("backend/payment/handlers/wallets_test.go", "package handlers")

    hits = store.search_hits("test payment")

    assert [hit.id for hit in hits] == [
        "backend/payment/handlers/wallets_test.go",
        "backend/payment/services/wallet.go",
    ]
    assert hits[0].score == pytest.approx(38.5)
    assert hits[1].score == pytest.approx(8.5)
    assert all(hit.cached for hit in hits)


def test_search_boosts_frequently_accessed_resources() -> None:
    store = _store(10_000)
    store.insert("src/ledger_a.py", "ledger")
    store.insert("src/ledger_b.py", "ledger")
    for _ in range(3):
        store.get("src/ledger_b.py")

    assert store.search("ledger")[0] == "src/ledger_b.py"


def test_search_with_only_stop_words_returns_nothing() -> None:
    store = _store(1_000)
    store.insert("src/the.py", "the and")
    assert store.search("the and of") == []


def test_search_is_capped_and_unique() -> None:
    store = _store(100_000)
    for index in range(40):
        store.insert(f"src/refund_{index:02d}.py", "refund handler")

    results = store.search("refund handler")

    assert len(results) == 20
    assert len(set(results)) == len(results)


def test_search_includes_uncached_repository_files(tmp_path: Path) -> None:
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "test_payment.py").write_text("def test_pay(): ...\n", encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "payment.py").write_text("def pay(): ...\n", encoding="utf-8")
    store = ContextStore(1_000, repo_root=tmp_path)

    hits = store.search_hits("payment tests")

    assert [hit.id for hit in hits] == ["tests/test_payment.py"]
    assert not hits[0].cached


class _CountingScanner:
    def __init__(self, root: Path) -> None:
        self._scanner = RepositoryScanner(root)
        self.walks = 0

    def iter_files(self, scope: str = ".", *, limit: int | None = None) -> list[str]:
        self.walks += 1
        return self._scanner.iter_files(scope, limit=limit)


def test_search_ranks_against_scan_snapshot_until_rescan(tmp_path: Path) -> None:
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "test_payment.py").write_text("def test_pay(): ...\n", encoding="utf-8")
    scanner = _CountingScanner(tmp_path)
    store = ContextStore(1_000, scanner=scanner)  # type: ignore[arg-type]

    assert store.search("payment tests") == ["tests/test_payment.py"]
    assert store.search("payment tests") == ["tests/test_payment.py"]
    assert scanner.walks == 1

    (tmp_path / "tests" / "test_refund.py").write_text("def test_refund(): ...\n", encoding="utf-8")
    assert store.search("refund spec") == []

    assert store.rescan() == 2
    assert store.search("refund spec") == ["tests/test_refund.py"]
    assert scanner.walks == 2


def test_rescan_without_repository_root_is_a_no_op() -> None:
    store = _store()
    store.insert("tests/test_payment.py", "x")

    assert store.rescan() == 0
    assert store.search("payment tests") == ["tests/test_payment.py"]


def test_set_relevance_reorders_search_results() -> None:
    store = _store(10_000)
    store.insert("a/refund.py", "x")
    store.insert("b/refund.py", "x")
    assert store.search("refund") == ["a/refund.py", "b/refund.py"]

    assert store.set_relevance("b/refund.py", 5.0)
    assert not store.set_relevance("missing.py", 5.0)

    assert store.search("refund") == ["b/refund.py", "a/refund.py"]
    assert store.peek("b/refund.py").relevance == 5.0  # type: ignore[union-attr]


def test_raised_relevance_keeps_oldest_resource_through_compaction() -> None:
    store = _store(auto_compact=False)
    for name in ("a.py", "b.py", "c.py"):
        store.insert(name, "x" * 30)

    store.set_relevance("a.py", 50.0)
    report = store.compact()

    assert report.evicted == ("b.py",)
    assert "a.py" in store
    assert store.current_size == 60


def test_custom_policy_weights_change_ranking() -> None:
    policy = ContextPolicy(scoring=ScoringWeights(filename_token_bonus=0.0, depth_penalty=5.0))
    store = _store(10_000, policy=policy)
    store.insert("a/b/c/refund.py", "x")
    store.insert("refund/notes.md", "x")

    assert store.search("refund") == ["refund/notes.md", "a/b/c/refund.py"]


def test_policy_rejects_inverted_ratios() -> None:
    with pytest.raises(ValueError, match="target_ratio"):
        ContextPolicy(trigger_ratio=0.5, target_ratio=0.6)
    with pytest.raises(ValueError):
        RetentionWeights(size_divisor=0)
    with pytest.raises(ValueError):
        ContextStore(0)


_IDS = st.sampled_from([f"src/file_{index}.py" for index in range(8)])


@settings(max_examples=60, deadline=None)
@given(st.lists(st.tuples(_IDS, st.integers(min_value=0, max_value=130)), max_size=40))
def test_capacity_bound_holds_for_any_insert_sequence(operations: list[tuple[str, int]]) -> None:
    store = _store(100)
    for resource_id, size in operations:
        with contextlib.suppress(ContextCapacityError):
            store.insert(resource_id, "x" * size)
        assert store.current_size <= store.capacity
        entries = [store.peek(item) for item in store.ids()]
        assert store.current_size == sum(entry.size for entry in entries if entry is not None)


@settings(max_examples=40, deadline=None)
@given(st.lists(st.text(alphabet="abcdefgh/_", min_size=1, max_size=12), min_size=1, max_size=60, unique=True))
def test_search_results_never_exceed_limit_or_repeat(paths: list[str]) -> None:
    store = _store(1_000_000)
    for path in paths:
        store.insert(path, "abc def")

    results = store.search("abc def gh")

    assert len(results) <= 20
    assert len(results) == len(set(results))
