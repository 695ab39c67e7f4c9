"""Module entrypoint for ``python -m conductor``."""

from __future__ import annotations

from conductor.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
