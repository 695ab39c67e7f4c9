"""
conductor - knowledge plane

File: src/conductor/knowledge_plane/__init__.py

Purpose
- Bounded context cache, lexical index, structural path heuristics, repository scanning.
"""

from conductor.knowledge_plane.context_store import (
    CachedResource,
    CompactionReport,
    ContextPolicy,
    ContextStore,
    ContextStoreStats,
    RetentionWeights,
    ScoringWeights,
    SearchHit,
)
from conductor.knowledge_plane.scanner import PathExcludes, RepositoryScanner
from conductor.knowledge_plane.search_index import SearchIndex, query_tokens, tokenize
from conductor.knowledge_plane.structural import (
    is_test_path,
    keyword_classes,
    structural_matches,
    subsystem_scope,
)

__all__ = [
    "CachedResource",
    "CompactionReport",
    "ContextPolicy",
    "ContextStore",
    "ContextStoreStats",
    "PathExcludes",
    "RepositoryScanner",
    "RetentionWeights",
    "ScoringWeights",
    "SearchHit",
    "SearchIndex",
    "is_test_path",
    "keyword_classes",
    "query_tokens",
    "structural_matches",
    "subsystem_scope",
    "tokenize",
]
