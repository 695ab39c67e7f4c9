from __future__ import annotations

from typing import TYPE_CHECKING

from conductor.knowledge_plane.scanner import PathExcludes, RepositoryScanner

if TYPE_CHECKING:
    from pathlib import Path


def _write(root: Path, relative: str, content: str | bytes = "x\n") -> None:
    target = root / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        target.write_bytes(content)
    else:
        target.write_text(content, encoding="utf-8")


def test_iter_files_is_sorted_and_honors_excludes(tmp_path: Path) -> None:
    for relative in (
        "src/b.py",
        "src/a.py",
        "src/__pycache__/a.cpython-312.pyc",
        ".git/HEAD",
        "node_modules/pkg/index.js",
        "logs/run.jsonl",
        "assets/logo.png",
        "web/app.min.js",
        "README.md",
    ):
        _write(tmp_path, relative)

    scanner = RepositoryScanner(tmp_path)

    assert scanner.iter_files() == ["README.md", "src/a.py", "src/b.py"]
    assert scanner.iter_files(limit=1) == ["README.md"]


def test_iter_files_scoped_and_out_of_root(tmp_path: Path) -> None:
    _write(tmp_path, "services/pay.go")
    _write(tmp_path, "src/main.go")
    scanner = RepositoryScanner(tmp_path)

    assert scanner.iter_files("services") == ["services/pay.go"]
    assert scanner.iter_files("src/main.go") == ["src/main.go"]
    assert scanner.iter_files("missing") == []
    assert scanner.iter_files("..") == []


def test_custom_excludes(tmp_path: Path) -> None:
    _write(tmp_path, "vendor/lib.go")
    _write(tmp_path, "main.go")
    scanner = RepositoryScanner(tmp_path, PathExcludes(directories=frozenset({"vendor"})))

    assert scanner.iter_files() == ["main.go"]


def test_read_text_skips_binary_and_escaping_paths(tmp_path: Path) -> None:
    _write(tmp_path, "notes.txt", "hello\n")
    _write(tmp_path, "blob.dat", b"\x00\x01\x02")
    scanner = RepositoryScanner(tmp_path)

    assert scanner.read_text("notes.txt") == "hello\n"
    assert scanner.read_text("blob.dat") is None
    assert scanner.read_text("missing.txt") is None
    assert scanner.read_text("../outside.txt") is None
