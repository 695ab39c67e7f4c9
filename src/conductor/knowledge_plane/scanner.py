"""
conductor - repository scanner

File: src/conductor/knowledge_plane/scanner.py

Purpose
- Deterministic walk of a repository tree yielding repo-relative POSIX paths.
- Shared by the context store's structural search and the file-listing tools.

Functional requirements
- Honor a centralized exclusion policy (VCS dirs, caches, build output, binaries).
- Optionally restrict the walk to a sub-scope of the tree.

Non-functional requirements
- Output ordering is stable (sorted by POSIX path).
- Never follows symlinks outside the root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Final

from conductor.utils.fs import is_within

_DEFAULT_EXCLUDED_DIRECTORIES: Final[frozenset[str]] = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        "__pycache__",
        "node_modules",
        "build",
        "dist",
        "logs",
    }
)
_DEFAULT_EXCLUDED_FILES: Final[frozenset[str]] = frozenset({".DS_Store"})
_DEFAULT_EXCLUDED_SUFFIXES: Final[frozenset[str]] = frozenset(
    {
        ".pyc",
        ".pyo",
        ".so",
        ".dylib",
        ".dll",
        ".class",
        ".png",
        ".jpg",
        ".gif",
        ".zip",
    }
)
_DEFAULT_EXCLUDED_GLOBS: Final[tuple[str, ...]] = (
    "*.egg-info/*",
    "*.min.js",
    "*.min.css",
)


@dataclass(frozen=True, slots=True)
class PathExcludes:
    """Centralized repository exclusion policy."""

    directories: frozenset[str] = _DEFAULT_EXCLUDED_DIRECTORIES
    file_names: frozenset[str] = _DEFAULT_EXCLUDED_FILES
    suffixes: frozenset[str] = _DEFAULT_EXCLUDED_SUFFIXES
    globs: tuple[str, ...] = _DEFAULT_EXCLUDED_GLOBS

    def should_exclude(self, relative_path: PurePosixPath, *, is_dir: bool) -> bool:
        parts = relative_path.parts
        if any(part in self.directories for part in parts[:-1]):
            return True

        leaf = relative_path.name
        if is_dir and leaf in self.directories:
            return True
        if not is_dir:
            if leaf in self.file_names:
                return True
            if relative_path.suffix.lower() in self.suffixes:
                return True

        candidate = relative_path.as_posix()
        return any(fnmatch(candidate, pattern) for pattern in self.globs)


@dataclass(frozen=True, slots=True)
class RepositoryScanner:
    """Walks ``root`` and yields repo-relative file paths."""

    root: Path
    excludes: PathExcludes = PathExcludes()

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", Path(self.root).resolve())

    def iter_files(self, scope: str = ".", *, limit: int | None = None) -> list[str]:
        """Return sorted repo-relative paths under ``scope``.

        A scope that does not exist (or escapes the root) yields nothing.
        """

        start = (self.root / scope).resolve() if scope not in ("", ".") else self.root
        if not is_within(start, self.root) or not start.exists():
            return []
        if start.is_file():
            relative = self._relative(start)
            if relative is None or self.excludes.should_exclude(relative, is_dir=False):
                return []
            return [relative.as_posix()]

        candidates: list[str] = []
        for current_dir, dir_names, file_names in os.walk(start, topdown=True, followlinks=False):
            current_path = Path(current_dir)

            kept_dirs: list[str] = []
            for directory in sorted(dir_names):
                relative_dir = self._relative(current_path / directory)
                if relative_dir is None or self.excludes.should_exclude(relative_dir, is_dir=True):
                    continue
                kept_dirs.append(directory)
            dir_names[:] = kept_dirs

            for name in sorted(file_names):
                relative_file = self._relative(current_path / name)
                if relative_file is None or self.excludes.should_exclude(relative_file, is_dir=False):
                    continue
                candidates.append(relative_file.as_posix())

        candidates.sort()
        if limit is not None:
            return candidates[:limit]
        return candidates

    def read_text(self, relative_path: str) -> str | None:
        """Best-effort UTF-8 read of one scanned file; binary or missing files give ``None``."""

        local = (self.root / relative_path).resolve()
        if not is_within(local, self.root) or not local.is_file():
            return None
        try:
            raw = local.read_bytes()
        except OSError:
            return None
        if b"\x00" in raw[:4096]:
            return None
        return raw.decode("utf-8", errors="replace")

    def _relative(self, path: Path) -> PurePosixPath | None:
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return None
        if path.is_symlink() and not is_within(path.resolve(), self.root):
            return None
        return PurePosixPath(relative.as_posix())


__all__ = ["PathExcludes", "RepositoryScanner"]
