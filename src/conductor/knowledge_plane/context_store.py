"""
conductor - bounded relevance-ranked context store

File: src/conductor/knowledge_plane/context_store.py

Purpose
- Size-bounded cache of named resources (file paths -> content) with access statistics.
- Lexical inverted index kept in lockstep with the cache.
- Relevance-ranked search combining a structural path heuristic with index lookups.
- Retention-score compaction that self-evicts under memory pressure.

Functional requirements
- ``current_size <= capacity`` after every mutating operation.
- Compaction brings ``current_size`` to ``target_ratio * capacity`` or evicts everything.
- Search results are unique and capped at ``max_results``.
- Uncached repository files are ranked from a path snapshot taken by ``rescan`` (lazily on
  the first search), so searches never walk the tree on their own.
- Evicted or replaced resources leave no stale entries in the index.

Non-functional requirements
- All operations are serialized by one reader/writer lock; reads may run concurrently.
- Ordering of search results and eviction is deterministic for equal scores.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from conductor.constants import DEFAULT_CAPACITY_BYTES
from conductor.domain.errors import ContextCapacityError
from conductor.knowledge_plane.scanner import RepositoryScanner
from conductor.knowledge_plane.search_index import (
    DEFAULT_MIN_INDEX_TOKEN_LENGTH,
    DEFAULT_MIN_QUERY_TOKEN_LENGTH,
    SearchIndex,
    content_tokens,
    file_name,
    path_depth,
    path_tokens,
    query_tokens,
)
from conductor.knowledge_plane.structural import structural_matches
from conductor.utils.concurrency import ReadWriteLock

if TYPE_CHECKING:
    from conductor.observability.metrics import MetricsRegistry

DEFAULT_TRIGGER_RATIO: Final[float] = 0.8
DEFAULT_TARGET_RATIO: Final[float] = 0.7
DEFAULT_MAX_SEARCH_RESULTS: Final[int] = 20
DEFAULT_STRUCTURAL_MIN_RESULTS: Final[int] = 5


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _require_weight(value: float, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{field_name} must be a number")
    number = float(value)
    if not math.isfinite(number) or number < 0:
        raise ValueError(f"{field_name} must be finite and >= 0")
    return number


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """Weights of the search relevance heuristic."""

    path_token_weight: float = 10.0
    filename_token_bonus: float = 20.0
    access_count_weight: float = 2.0
    depth_penalty: float = 0.5

    def __post_init__(self) -> None:
        for name in ("path_token_weight", "filename_token_bonus", "access_count_weight", "depth_penalty"):
            object.__setattr__(self, name, _require_weight(getattr(self, name), f"ScoringWeights.{name}"))


@dataclass(frozen=True, slots=True)
class RetentionWeights:
    """Weights of the compaction retention score."""

    access_count_weight: float = 10.0
    size_divisor: float = 1000.0

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "access_count_weight",
            _require_weight(self.access_count_weight, "RetentionWeights.access_count_weight"),
        )
        divisor = _require_weight(self.size_divisor, "RetentionWeights.size_divisor")
        if divisor == 0:
            raise ValueError("RetentionWeights.size_divisor must be > 0")
        object.__setattr__(self, "size_divisor", divisor)


@dataclass(frozen=True, slots=True)
class ContextPolicy:
    """Tunable thresholds of the store; defaults reproduce the reference behavior."""

    trigger_ratio: float = DEFAULT_TRIGGER_RATIO
    target_ratio: float = DEFAULT_TARGET_RATIO
    min_index_token_length: int = DEFAULT_MIN_INDEX_TOKEN_LENGTH
    min_query_token_length: int = DEFAULT_MIN_QUERY_TOKEN_LENGTH
    max_results: int = DEFAULT_MAX_SEARCH_RESULTS
    structural_min_results: int = DEFAULT_STRUCTURAL_MIN_RESULTS
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    retention: RetentionWeights = field(default_factory=RetentionWeights)

    def __post_init__(self) -> None:
        if not 0 < self.target_ratio < self.trigger_ratio <= 1:
            raise ValueError(
                "ContextPolicy requires 0 < target_ratio < trigger_ratio <= 1, "
                f"got target={self.target_ratio} trigger={self.trigger_ratio}"
            )
        for name in ("min_index_token_length", "min_query_token_length"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"ContextPolicy.{name} must be an integer >= 0")
        for name in ("max_results", "structural_min_results"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"ContextPolicy.{name} must be an integer > 0")


@dataclass(frozen=True, slots=True)
class CachedResource:
    """Immutable snapshot of one cached resource."""

    id: str
    content: str
    size: int
    access_count: int = 0
    last_accessed: datetime = field(default_factory=_utc_now)
    relevance: float = 0.0


@dataclass(frozen=True, slots=True)
class SearchHit:
    id: str
    score: float
    cached: bool


@dataclass(frozen=True, slots=True)
class CompactionReport:
    evicted: tuple[str, ...]
    bytes_before: int
    bytes_after: int
    target_bytes: int

    @property
    def reached_target(self) -> bool:
        return self.bytes_after <= self.target_bytes


@dataclass(frozen=True, slots=True)
class ContextStoreStats:
    entries: int
    current_size: int
    capacity: int
    indexed_tokens: int
    hits: int
    misses: int
    evictions: int
    compactions: int

    @property
    def utilization(self) -> float:
        return self.current_size / self.capacity

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": self.entries,
            "current_size": self.current_size,
            "capacity": self.capacity,
            "utilization": round(self.utilization, 6),
            "indexed_tokens": self.indexed_tokens,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "compactions": self.compactions,
        }


class ContextStore:
    """Bounded relevance cache over named resources plus a lexical search index."""

    def __init__(
        self,
        capacity_bytes: int = DEFAULT_CAPACITY_BYTES,
        *,
        policy: ContextPolicy | None = None,
        auto_compact: bool = True,
        repo_root: Path | str | None = None,
        scanner: RepositoryScanner | None = None,
        metrics: MetricsRegistry | None = None,
        logger: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if isinstance(capacity_bytes, bool) or not isinstance(capacity_bytes, int):
            raise TypeError("capacity_bytes must be an integer")
        if capacity_bytes <= 0:
            raise ValueError("capacity_bytes must be > 0")

        self._capacity = capacity_bytes
        self._policy = policy if policy is not None else ContextPolicy()
        self._auto_compact = auto_compact
        if scanner is None and repo_root is not None:
            scanner = RepositoryScanner(Path(repo_root))
        self._scanner = scanner
        self._metrics = metrics
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._clock = clock if clock is not None else _utc_now

        self._lock = ReadWriteLock()
        self._entries: dict[str, CachedResource] = {}
        self._index = SearchIndex()
        self._current_size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._compactions = 0
        self._scanned: tuple[str, ...] | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def policy(self) -> ContextPolicy:
        return self._policy

    @property
    def current_size(self) -> int:
        with self._lock.read():
            return self._current_size

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def __contains__(self, resource_id: object) -> bool:
        return isinstance(resource_id, str) and self.contains(resource_id)

    def contains(self, resource_id: str) -> bool:
        with self._lock.read():
            return resource_id in self._entries

    def ids(self) -> list[str]:
        with self._lock.read():
            return sorted(self._entries)

    def insert(self, resource_id: str, content: str, *, relevance: float | None = None) -> CachedResource:
        """Cache ``content`` under ``resource_id``.

        Compacts first when the insert would overflow and auto-compaction is
        enabled; raises :class:`ContextCapacityError` if it still cannot fit.
        Re-inserting an id replaces its content and index tokens.
        """

        if not isinstance(resource_id, str) or not resource_id.strip():
            raise ValueError("resource_id must be a non-empty string")
        if not isinstance(content, str):
            raise TypeError("content must be a string")
        size = len(content.encode("utf-8"))

        with self._lock.write():
            if size > self._capacity:
                raise ContextCapacityError(
                    resource_id,
                    requested_bytes=size,
                    available_bytes=self._capacity - self._current_size,
                )

            if self._projected_size(resource_id, size) > self._capacity and self._auto_compact:
                self._compact_locked(reason="insert_overflow")

            projected = self._projected_size(resource_id, size)
            if projected > self._capacity:
                existing = self._entries.get(resource_id)
                available = self._capacity - self._current_size + (existing.size if existing else 0)
                self._logger.warning(
                    "context_store_insert_rejected",
                    resource_id=resource_id,
                    requested_bytes=size,
                    available_bytes=available,
                )
                raise ContextCapacityError(
                    resource_id,
                    requested_bytes=size,
                    available_bytes=available,
                )

            previous = self._entries.pop(resource_id, None)
            if previous is not None:
                self._current_size -= previous.size
                self._index.discard(resource_id)

            resource = CachedResource(
                id=resource_id,
                content=content,
                size=size,
                access_count=0,
                last_accessed=self._clock(),
                relevance=(
                    float(relevance)
                    if relevance is not None
                    else (previous.relevance if previous is not None else 0.0)
                ),
            )
            self._entries[resource_id] = resource
            self._current_size += size
            self._index.add(resource_id, self._tokens_for(resource_id, content))
            self._record_gauges()
            return resource

    def get(self, resource_id: str) -> CachedResource | None:
        """Return a snapshot and bump the resource's access statistics."""

        with self._lock.write():
            entry = self._entries.get(resource_id)
            if entry is None:
                self._misses += 1
                return None
            updated = replace(
                entry,
                access_count=entry.access_count + 1,
                last_accessed=self._clock(),
            )
            self._entries[resource_id] = updated
            self._hits += 1
            return updated

    def peek(self, resource_id: str) -> CachedResource | None:
        """Return a snapshot without touching access statistics."""

        with self._lock.read():
            return self._entries.get(resource_id)

    def remove(self, resource_id: str) -> bool:
        with self._lock.write():
            removed = self._evict_locked(resource_id, count_eviction=False)
            if removed:
                self._record_gauges()
            return removed

    def set_relevance(self, resource_id: str, relevance: float) -> bool:
        if isinstance(relevance, bool) or not isinstance(relevance, (int, float)):
            raise TypeError("relevance must be a number")
        if not math.isfinite(float(relevance)):
            raise ValueError("relevance must be finite")
        with self._lock.write():
            entry = self._entries.get(resource_id)
            if entry is None:
                return False
            self._entries[resource_id] = replace(entry, relevance=float(relevance))
            return True

    def rescan(self) -> int:
        """Re-walk the repository root and replace the path snapshot used by search.

        Blocking; async callers run it via ``asyncio.to_thread``. Returns the
        number of paths in the new snapshot (0 without a repository root).
        """

        if self._scanner is None:
            return 0
        paths = tuple(self._scanner.iter_files())
        with self._lock.write():
            self._scanned = paths
        return len(paths)

    def search(self, query: str) -> list[str]:
        """Relevance-ranked resource ids for ``query``; see :meth:`search_hits`."""

        return [hit.id for hit in self.search_hits(query)]

    def search_hits(self, query: str) -> list[SearchHit]:
        policy = self._policy
        tokens = query_tokens(query, min_length=policy.min_query_token_length)
        if not tokens:
            return []

        scanned = self._scanned_paths()

        with self._lock.read():
            candidates: dict[str, None] = dict.fromkeys(sorted(self._entries))
            for path in scanned:
                candidates.setdefault(path, None)

            found: dict[str, None] = dict.fromkeys(structural_matches(tokens, candidates))
            if len(found) < policy.structural_min_results:
                for resource_id in self._index.lookup_all(tokens):
                    found.setdefault(resource_id, None)

            hits = [self._score_locked(resource_id, tokens) for resource_id in found]

        hits.sort(key=lambda hit: (-hit.score, hit.id))
        return hits[: policy.max_results]

    def should_compact(self) -> bool:
        with self._lock.read():
            return self._current_size / self._capacity >= self._policy.trigger_ratio

    def compact(self) -> CompactionReport:
        """Evict lowest-retention resources until at or below the target ratio."""

        with self._lock.write():
            report = self._compact_locked(reason="explicit")
            self._record_gauges()
            return report

    def stats(self) -> ContextStoreStats:
        with self._lock.read():
            return ContextStoreStats(
                entries=len(self._entries),
                current_size=self._current_size,
                capacity=self._capacity,
                indexed_tokens=len(self._index),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                compactions=self._compactions,
            )

    def indexed_ids(self, token: str) -> frozenset[str]:
        with self._lock.read():
            return self._index.lookup(token.lower())

    def retention_score(self, resource: CachedResource) -> float:
        weights = self._policy.retention
        return (
            weights.access_count_weight * resource.access_count
            + resource.relevance
            - resource.size / weights.size_divisor
        )

    def _scanned_paths(self) -> tuple[str, ...]:
        if self._scanner is None:
            return ()
        with self._lock.read():
            snapshot = self._scanned
        if snapshot is None:
            self.rescan()
            with self._lock.read():
                snapshot = self._scanned
        return snapshot or ()

    def _projected_size(self, resource_id: str, size: int) -> int:
        existing = self._entries.get(resource_id)
        return self._current_size - (existing.size if existing is not None else 0) + size

    def _tokens_for(self, resource_id: str, content: str) -> frozenset[str]:
        policy = self._policy
        return content_tokens(content, min_length=policy.min_index_token_length) | path_tokens(
            resource_id, min_length=policy.min_query_token_length
        )

    def _score_locked(self, resource_id: str, tokens: list[str]) -> SearchHit:
        weights = self._policy.scoring
        lowered = resource_id.lower()
        name = file_name(resource_id)

        score = 0.0
        for token in tokens:
            if token in lowered:
                score += weights.path_token_weight
                if token in name:
                    score += weights.filename_token_bonus

        entry = self._entries.get(resource_id)
        if entry is not None:
            score += weights.access_count_weight * entry.access_count
            score += entry.relevance
        score -= weights.depth_penalty * path_depth(resource_id)
        return SearchHit(id=resource_id, score=score, cached=entry is not None)

    def _compact_locked(self, *, reason: str) -> CompactionReport:
        bytes_before = self._current_size
        target = int(self._policy.target_ratio * self._capacity)

        ranked = sorted(
            self._entries.values(),
            key=lambda entry: (self.retention_score(entry), entry.last_accessed, entry.id),
        )
        evicted: list[str] = []
        for entry in ranked:
            if self._current_size <= target:
                break
            self._evict_locked(entry.id)
            evicted.append(entry.id)

        self._compactions += 1
        if self._metrics is not None:
            self._metrics.inc("compactions_total")
            self._metrics.inc("context_evictions_total", len(evicted))
        self._logger.info(
            "context_store_compacted",
            reason=reason,
            evicted=len(evicted),
            bytes_before=bytes_before,
            bytes_after=self._current_size,
            target_bytes=target,
        )
        return CompactionReport(
            evicted=tuple(evicted),
            bytes_before=bytes_before,
            bytes_after=self._current_size,
            target_bytes=target,
        )

    def _evict_locked(self, resource_id: str, *, count_eviction: bool = True) -> bool:
        entry = self._entries.pop(resource_id, None)
        if entry is None:
            return False
        self._current_size -= entry.size
        self._index.discard(resource_id)
        if count_eviction:
            self._evictions += 1
        return True

    def _record_gauges(self) -> None:
        if self._metrics is None:
            return
        self._metrics.set_gauge("context_store_bytes", self._current_size)
        self._metrics.set_gauge("context_store_entries", len(self._entries))


__all__ = [
    "DEFAULT_CAPACITY_BYTES",
    "DEFAULT_MAX_SEARCH_RESULTS",
    "DEFAULT_STRUCTURAL_MIN_RESULTS",
    "DEFAULT_TARGET_RATIO",
    "DEFAULT_TRIGGER_RATIO",
    "CachedResource",
    "CompactionReport",
    "ContextPolicy",
    "ContextStore",
    "ContextStoreStats",
    "RetentionWeights",
    "ScoringWeights",
    "SearchHit",
]
