"""
conductor - filesystem utilities

Purpose
- Atomic writes and containment checks for tools that touch the workspace.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Relative paths are resolved against a workspace root and refused when they escape it.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path, PurePosixPath

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "is_within",
    "relative_posix",
    "resolve_within",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        if isinstance(data, bytes):
            with os.fdopen(fd, "wb") as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())
        else:
            with os.fdopen(fd, "w", encoding=encoding) as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())

        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if resolved ``child`` is within resolved ``parent``."""

    resolved_parent = Path(parent).resolve(strict=False)
    resolved_child = Path(child).resolve(strict=False)
    try:
        resolved_child.relative_to(resolved_parent)
    except ValueError:
        return False
    return True


def resolve_within(root: PathLike, relative: str) -> Path:
    """Resolve ``relative`` under ``root``; raise ``ValueError`` on traversal."""

    if not isinstance(relative, str) or not relative.strip():
        raise ValueError("path must be a non-empty string")
    normalized = relative.replace("\\", "/").strip()
    if PurePosixPath(normalized).is_absolute():
        raise ValueError(f"path must be relative to the workspace root: {relative!r}")

    base = Path(root).resolve(strict=True)
    candidate = (base / normalized).resolve(strict=False)
    if not is_within(candidate, base):
        raise ValueError(f"path escapes workspace root: {relative!r}")
    return candidate


def relative_posix(root: PathLike, path: PathLike) -> str:
    """Return ``path`` relative to ``root`` in POSIX form."""

    return Path(path).resolve(strict=False).relative_to(Path(root).resolve(strict=False)).as_posix()
