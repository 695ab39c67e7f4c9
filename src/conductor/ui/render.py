"""Output rendering for the conductor CLI.

File: src/conductor/ui/render.py

Purpose
- Plain-text rendering of CLI results (search hits, task results, config).
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Non-functional requirements
- No dependencies beyond the standard library.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    if no_color_flag or os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Deterministic plain-text writer bound to one output stream."""

    def __init__(self, *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _write(self, line: str) -> None:
        print(line, file=self._stream)

    def _bold(self, text: str) -> str:
        return f"\033[1m{text}\033[0m" if self._color else text

    def kv(self, key: str, value: object) -> None:
        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def section(self, title: str) -> None:
        self._write(f"\n{self._bold(title)}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[object]]) -> None:
        """Left-aligned columns; nothing is written for an empty table."""

        if not rows:
            return
        cells = [[str(cell) for cell in row] for row in rows]
        widths = [len(header) for header in headers]
        for row in cells:
            for index, cell in enumerate(row[: len(headers)]):
                widths[index] = max(widths[index], len(cell))

        def _pad(row: Sequence[str]) -> str:
            return "  ".join(
                (row[index] if index < len(row) else "").ljust(widths[index]) for index in range(len(headers))
            ).rstrip()

        self._write(f"  {self._bold(_pad(list(headers)))}")
        self._write(f"  {'  '.join('-' * width for width in widths)}")
        for row in cells:
            self._write(f"  {_pad(row)}")


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
