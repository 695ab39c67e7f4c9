from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from conductor.utils.fs import atomic_write, is_within, relative_posix, resolve_within

if TYPE_CHECKING:
    from pathlib import Path


def test_atomic_write_replaces_content_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "out.txt"
    atomic_write(target, "first")
    atomic_write(target, "second")

    assert target.read_text(encoding="utf-8") == "second"
    assert [item.name for item in tmp_path.iterdir()] == ["out.txt"]


def test_atomic_write_accepts_bytes(tmp_path: Path) -> None:
    target = tmp_path / "blob.bin"
    atomic_write(target, b"\x00\x01")
    assert target.read_bytes() == b"\x00\x01"


def test_resolve_within_rejects_traversal_and_absolute_paths(tmp_path: Path) -> None:
    assert resolve_within(tmp_path, "src/app.py") == (tmp_path / "src" / "app.py").resolve()

    with pytest.raises(ValueError, match="escapes"):
        resolve_within(tmp_path, "../outside.txt")
    with pytest.raises(ValueError, match="relative"):
        resolve_within(tmp_path, "/etc/passwd")
    with pytest.raises(ValueError):
        resolve_within(tmp_path, "  ")


def test_is_within_and_relative_posix(tmp_path: Path) -> None:
    nested = tmp_path / "a" / "b.txt"
    assert is_within(nested, tmp_path)
    assert not is_within(tmp_path.parent, tmp_path)
    assert relative_posix(tmp_path, nested) == "a/b.txt"
