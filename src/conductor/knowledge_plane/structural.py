"""Keyword-class to path-prefix heuristics used by structural search and scoping."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import Final

# Keyword class -> canonical path prefixes, matched at the start of a path or
# at any directory boundary.
STRUCTURAL_PREFIXES: Final[Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        "test": ("tests/", "test/", "__tests__/", "spec/", "e2e/"),
        "component": ("components/", "component/", "ui/", "widgets/"),
        "service": ("services/", "service/", "internal/services/"),
        "model": ("models/", "model/", "entities/", "domain/", "schemas/"),
        "api": ("api/", "handlers/", "routes/", "controllers/", "endpoints/"),
        "config": ("config/", "configs/", "settings/", "conf/"),
    }
)

_KEYWORD_ALIASES: Final[Mapping[str, str]] = MappingProxyType(
    {
        "tests": "test",
        "testing": "test",
        "spec": "test",
        "specs": "test",
        "components": "component",
        "widget": "component",
        "services": "service",
        "models": "model",
        "entity": "model",
        "schema": "model",
        "apis": "api",
        "handler": "api",
        "endpoint": "api",
        "route": "api",
        "configs": "config",
        "configuration": "config",
        "settings": "config",
    }
)

# Keyword -> subsystem scope used by the search worker to narrow its scan.
_SUBSYSTEM_SCOPES: Final[Mapping[str, str]] = MappingProxyType(
    {
        "test": "tests",
        "component": "components",
        "service": "services",
        "model": "models",
        "api": "api",
        "config": "config",
    }
)


def keyword_classes(tokens: Iterable[str]) -> list[str]:
    """Return the keyword classes named by ``tokens`` in first-seen order."""

    classes: dict[str, None] = {}
    for token in tokens:
        normalized = _KEYWORD_ALIASES.get(token, token)
        if normalized in STRUCTURAL_PREFIXES:
            classes.setdefault(normalized, None)
    return list(classes)


def matches_prefix(resource_id: str, prefixes: Sequence[str]) -> bool:
    path = resource_id.replace("\\", "/").lower()
    return any(path.startswith(prefix) or f"/{prefix}" in path for prefix in prefixes)


def structural_matches(tokens: Sequence[str], candidates: Iterable[str]) -> list[str]:
    """Candidates inside a keyword class's prefixes whose path contains a query token."""

    classes = keyword_classes(tokens)
    if not classes:
        return []
    prefixes = tuple(prefix for name in classes for prefix in STRUCTURAL_PREFIXES[name])

    hits: dict[str, None] = {}
    for candidate in candidates:
        if candidate in hits or not matches_prefix(candidate, prefixes):
            continue
        lowered = candidate.lower()
        if any(token in lowered for token in tokens):
            hits[candidate] = None
    return list(hits)


def subsystem_scope(tokens: Iterable[str], *, default: str = ".") -> str:
    """Map a query to the subsystem directory it most likely concerns."""

    for name in keyword_classes(tokens):
        return _SUBSYSTEM_SCOPES[name]
    return default


def is_test_path(resource_id: str) -> bool:
    """Heuristic classification of test files by path."""

    path = resource_id.replace("\\", "/").lower()
    name = path.rsplit("/", 1)[-1]
    return (
        "_test." in name
        or name.startswith("test_")
        or ".spec." in name
        or ".test." in name
        or "/tests/" in f"/{path}"
        or "/__tests__/" in f"/{path}"
    )


__all__ = [
    "STRUCTURAL_PREFIXES",
    "is_test_path",
    "keyword_classes",
    "matches_prefix",
    "structural_matches",
    "subsystem_scope",
]
