"""Lexical tokenization and the token -> resource-id inverted index."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import PurePosixPath
from typing import Final

DEFAULT_MIN_INDEX_TOKEN_LENGTH: Final[int] = 3
DEFAULT_MIN_QUERY_TOKEN_LENGTH: Final[int] = 2

_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"[a-z0-9]+")

STOP_WORDS: Final[frozenset[str]] = frozenset(
    {
        "a",
        "about",
        "add",
        "all",
        "an",
        "and",
        "any",
        "are",
        "as",
        "at",
        "be",
        "but",
        "by",
        "can",
        "does",
        "for",
        "from",
        "has",
        "have",
        "how",
        "in",
        "into",
        "is",
        "it",
        "its",
        "make",
        "new",
        "not",
        "of",
        "on",
        "or",
        "should",
        "that",
        "the",
        "them",
        "then",
        "there",
        "this",
        "to",
        "use",
        "was",
        "were",
        "what",
        "when",
        "where",
        "which",
        "will",
        "with",
        "would",
    }
)


def tokenize(text: str, *, min_length: int) -> list[str]:
    """Lower-case ``text`` and return tokens strictly longer than ``min_length``.

    Order of first occurrence is preserved; duplicates are dropped.
    """

    seen: dict[str, None] = {}
    for match in _TOKEN_PATTERN.finditer(text.lower()):
        token = match.group(0)
        if len(token) > min_length:
            seen.setdefault(token, None)
    return list(seen)


def query_tokens(query: str, *, min_length: int = DEFAULT_MIN_QUERY_TOKEN_LENGTH) -> list[str]:
    return [token for token in tokenize(query, min_length=min_length) if token not in STOP_WORDS]


def content_tokens(
    content: str, *, min_length: int = DEFAULT_MIN_INDEX_TOKEN_LENGTH
) -> frozenset[str]:
    return frozenset(tokenize(content, min_length=min_length))


def path_tokens(resource_id: str, *, min_length: int = DEFAULT_MIN_QUERY_TOKEN_LENGTH) -> frozenset[str]:
    """Tokens taken from the directory and file-name segments of a resource id."""

    return frozenset(tokenize(resource_id.replace("\\", "/"), min_length=min_length))


def path_depth(resource_id: str) -> int:
    return resource_id.replace("\\", "/").strip("/").count("/")


def file_name(resource_id: str) -> str:
    return PurePosixPath(resource_id.replace("\\", "/")).name.lower()


class SearchIndex:
    """Inverted token index kept in lockstep with the owning store.

    The index itself is not synchronized; the context store guards it with
    the same lock that guards its cache.
    """

    __slots__ = ("_postings", "_tokens_by_id")

    def __init__(self) -> None:
        self._postings: dict[str, set[str]] = {}
        self._tokens_by_id: dict[str, frozenset[str]] = {}

    def __len__(self) -> int:
        return len(self._postings)

    def __contains__(self, token: object) -> bool:
        return token in self._postings

    def add(self, resource_id: str, tokens: Iterable[str]) -> None:
        """Index ``resource_id`` under ``tokens``, replacing any previous token set."""

        self.discard(resource_id)
        frozen = frozenset(tokens)
        self._tokens_by_id[resource_id] = frozen
        for token in frozen:
            self._postings.setdefault(token, set()).add(resource_id)

    def discard(self, resource_id: str) -> None:
        previous = self._tokens_by_id.pop(resource_id, None)
        if previous is None:
            return
        for token in previous:
            bucket = self._postings.get(token)
            if bucket is None:
                continue
            bucket.discard(resource_id)
            if not bucket:
                del self._postings[token]

    def lookup(self, token: str) -> frozenset[str]:
        return frozenset(self._postings.get(token, ()))

    def lookup_all(self, tokens: Iterable[str]) -> list[str]:
        """Union of posting lists, ordered by first matching token then id."""

        ordered: dict[str, None] = {}
        for token in tokens:
            for resource_id in sorted(self._postings.get(token, ())):
                ordered.setdefault(resource_id, None)
        return list(ordered)

    def tokens_for(self, resource_id: str) -> frozenset[str]:
        return self._tokens_by_id.get(resource_id, frozenset())

    def ids(self) -> frozenset[str]:
        return frozenset(self._tokens_by_id)

    def buckets_containing(self, resource_id: str) -> list[str]:
        return sorted(token for token, bucket in self._postings.items() if resource_id in bucket)


__all__ = [
    "DEFAULT_MIN_INDEX_TOKEN_LENGTH",
    "DEFAULT_MIN_QUERY_TOKEN_LENGTH",
    "STOP_WORDS",
    "SearchIndex",
    "content_tokens",
    "file_name",
    "path_depth",
    "path_tokens",
    "query_tokens",
    "tokenize",
]
